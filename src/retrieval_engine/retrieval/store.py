"""
Vector store implementations.

Pattern: Protocol → Production impl → Test double → Factory

This module contains:
1. validate_namespace_id() - Namespace ids double as file names
2. InMemoryVectorStore - Namespace-partitioned store (testing/development)
3. FileVectorStore - One JSON file per namespace (production)
4. get_vector_store() - Factory function

CONCURRENCY:
------------
Each namespace has its own re-entrant lock guarding load, mutate and persist.
Queries copy the namespace's vector list under the lock and score outside
it, so a query observes a namespace either before or after an upsert, never
halfway through. Different namespaces never contend. The registry of
namespaces has its own short-lived lock.

A namespace is loaded from its backend the first time it is touched, by a
query, a mutation or `initialize()`.

FAILURE MODEL:
--------------
Nothing here raises on bad input or I/O trouble. Malformed vectors are
skipped with a warning; a failed persist is logged, the in-memory state stays
authoritative, and the namespace is marked dirty so `flush()` can retry.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

import numpy as np
from pydantic import ValidationError

from retrieval_engine.config import DEFAULT_STORAGE_DIR
from retrieval_engine.core import QueryMatch, QueryResult
from retrieval_engine.errors import DimensionMismatchError, InvalidNamespaceError
from retrieval_engine.persistence import atomic_write_json, quarantine_file, read_json
from retrieval_engine.schemas.metadata import SUMMARY_KEYS, Vector
from retrieval_engine.similarity import cosine_similarities

logger = logging.getLogger(__name__)

_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")
NAMESPACE_KEY = "namespaceId"


def validate_namespace_id(namespace_id: Any) -> str:
    """
    Check that a namespace id is safe to use as a file name.

    Raises:
        InvalidNamespaceError: empty, not a string, starts with a dot, or
            contains anything beyond letters, digits, `_`, `-` and `.`.
    """
    if not isinstance(namespace_id, str) or not _NAMESPACE_PATTERN.match(namespace_id):
        raise InvalidNamespaceError(f"Invalid namespace id: {namespace_id!r}")
    return namespace_id


class _Namespace:
    """Per-namespace state. Every field is guarded by `lock`."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.vectors: list[Vector] = []
        self.loaded = False
        self.dirty = False


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryVectorStore:
    """
    Namespace-partitioned vector store held in memory.

    Subclasses add a backend by overriding the `_load_namespace`,
    `_persist_namespace`, `_backend_namespaces` and `_backend_has` hooks;
    everything else (validation, locking, search) lives here.
    """

    def __init__(self, dimension: int = 1536):
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1: {dimension}")
        self._dimension = dimension
        self._namespaces: dict[str, _Namespace] = {}
        self._registry_lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    # -----------------------------------------------------------------------
    # lifecycle
    # -----------------------------------------------------------------------

    def initialize(self) -> int:
        """Load every namespace the backend knows about. Returns the count."""
        names = self._backend_namespaces()
        for name in names:
            space = self._namespace(name)
            with space.lock:
                self._ensure_loaded(name, space)
        logger.info(f"Vector store initialized with {len(names)} namespaces")
        return len(names)

    def flush(self) -> bool:
        """Re-attempt persisting namespaces whose last persist failed."""
        ok = True
        for name in self._registered():
            space = self._namespaces[name]
            with space.lock:
                if space.dirty and not self._persist_locked(name, space):
                    ok = False
        return ok

    # -----------------------------------------------------------------------
    # VectorStore protocol
    # -----------------------------------------------------------------------

    def upsert(self, vectors: list[Vector | Mapping[str, Any]]) -> bool:
        """
        Insert or replace vectors by id (last write wins).

        Malformed vectors are skipped with a warning and the rest of the
        batch is stored. Returns False only when a namespace could not be
        persisted; a batch with nothing valid to store is a no-op success.
        """
        grouped: dict[str, dict[str, Vector]] = {}
        for raw in vectors:
            vector = self._coerce(raw)
            if vector is None:
                continue
            grouped.setdefault(vector.namespace_id, {})[vector.id] = vector

        if not grouped:
            logger.warning("Upsert called without any valid vectors; nothing stored")
            return True

        ok = True
        for name, incoming in grouped.items():
            space = self._namespace(name)
            with space.lock:
                self._ensure_loaded(name, space)
                kept = [v for v in space.vectors if v.id not in incoming]
                space.vectors = kept + list(incoming.values())
                if not self._persist_locked(name, space):
                    ok = False
            logger.debug(f"Upserted {len(incoming)} vectors into namespace {name}")
        return ok

    def query(
        self,
        vector: np.ndarray,
        filter: Mapping[str, Any] | None = None,
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> QueryResult:
        """
        Top-K cosine similarity search.

        With `filter["namespaceId"]` only that namespace is scanned; otherwise
        every namespace is. Every filter key must be present in a vector's
        metadata with an equal value. Ties keep insertion order.
        """
        namespace = str(filter.get(NAMESPACE_KEY, "")) if filter else ""
        empty = QueryResult(matches=[], namespace=namespace)

        query_vec = np.asarray(vector, dtype=np.float64).ravel()
        if query_vec.shape != (self._dimension,):
            logger.warning(
                f"Query vector has dimension {query_vec.shape[0]}, expected {self._dimension}"
            )
            return empty
        if top_k <= 0:
            return empty

        if filter and NAMESPACE_KEY in filter:
            try:
                names = [validate_namespace_id(filter[NAMESPACE_KEY])]
            except InvalidNamespaceError as e:
                logger.warning(str(e))
                return empty
        else:
            names = self._known_namespaces()

        candidates: list[Vector] = []
        for name in names:
            candidates.extend(v for v in self.snapshot(name) if v.matches(filter))
        if not candidates:
            return empty

        scores = cosine_similarities(query_vec, np.vstack([v.values for v in candidates]))
        order = np.argsort(-scores, kind="stable")[:top_k]
        matches = [
            QueryMatch(
                id=candidates[i].id,
                score=float(scores[i]),
                metadata=self._project(candidates[i], include_metadata),
            )
            for i in order
        ]
        return QueryResult(matches=matches, namespace=namespace)

    def delete_one(self, vector_id: str) -> bool:
        """Delete a vector by id from every namespace holding it."""
        removed = 0
        for name in self._known_namespaces():
            removed += self._delete_where(name, lambda v: v.id == vector_id)
        return removed > 0

    def delete_ids(self, namespace_id: str, vector_ids: Iterable[str]) -> int:
        """
        Delete the given ids from one namespace only, with a single persist.

        Other namespaces are never loaded or touched. Returns the number of
        vectors removed.
        """
        ids = set(vector_ids)
        if not ids:
            return 0
        try:
            validate_namespace_id(namespace_id)
        except InvalidNamespaceError as e:
            logger.warning(str(e))
            return 0
        return self._delete_where(namespace_id, lambda v: v.id in ids)

    def delete_many(self, filter: Mapping[str, Any]) -> int:
        """
        Delete every vector matching the filter.

        Without a `namespaceId` key every namespace is swept. Returns the
        number of vectors removed. An empty filter deletes nothing.
        """
        if not filter:
            logger.warning("delete_many called with an empty filter; nothing deleted")
            return 0
        if NAMESPACE_KEY in filter:
            try:
                names = [validate_namespace_id(filter[NAMESPACE_KEY])]
            except InvalidNamespaceError as e:
                logger.warning(str(e))
                return 0
        else:
            names = self._known_namespaces()

        removed = 0
        for name in names:
            removed += self._delete_where(name, lambda v: v.matches(filter))
        if removed:
            logger.info(f"Deleted {removed} vectors matching {dict(filter or {})}")
        return removed

    def snapshot(self, namespace_id: str) -> list[Vector]:
        """Copy of a namespace's vectors in insertion order (empty if unknown)."""
        space = self._existing(namespace_id)
        if space is None:
            return []
        with space.lock:
            self._ensure_loaded(namespace_id, space)
            return list(space.vectors)

    def get_stats(self) -> dict[str, Any]:
        """Counts of non-empty namespaces and stored vectors."""
        per_namespace = {}
        for name in self._known_namespaces():
            count = len(self.snapshot(name))
            if count:
                per_namespace[name] = count
        return {
            "namespaces": len(per_namespace),
            "totalVectors": sum(per_namespace.values()),
            "perNamespace": per_namespace,
        }

    # -----------------------------------------------------------------------
    # backend hooks
    # -----------------------------------------------------------------------

    def _load_namespace(self, namespace_id: str) -> list[Vector]:
        return []

    def _persist_namespace(self, namespace_id: str, vectors: list[Vector]) -> None:
        """No-op for in-memory store."""

    def _backend_namespaces(self) -> list[str]:
        return []

    def _backend_has(self, namespace_id: str) -> bool:
        return False

    # -----------------------------------------------------------------------
    # internals
    # -----------------------------------------------------------------------

    def _coerce(self, raw: Vector | Mapping[str, Any]) -> Vector | None:
        try:
            vector = raw if isinstance(raw, Vector) else Vector.from_dict(raw)
            validate_namespace_id(vector.namespace_id)
            if vector.values.shape != (self._dimension,):
                raise DimensionMismatchError(self._dimension, vector.values.shape[0], vector.id)
            if not np.all(np.isfinite(vector.values)):
                raise ValueError(f"Vector {vector.id} contains non-finite values")
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed vector: {e}")
            return None
        return vector

    def _namespace(self, namespace_id: str) -> _Namespace:
        with self._registry_lock:
            space = self._namespaces.get(namespace_id)
            if space is None:
                space = _Namespace()
                self._namespaces[namespace_id] = space
            return space

    def _existing(self, namespace_id: str) -> _Namespace | None:
        """Registered namespace, or one the backend has; never creates an empty one."""
        with self._registry_lock:
            space = self._namespaces.get(namespace_id)
        if space is not None:
            return space
        if self._backend_has(namespace_id):
            return self._namespace(namespace_id)
        return None

    def _registered(self) -> list[str]:
        with self._registry_lock:
            return list(self._namespaces)

    def _known_namespaces(self) -> list[str]:
        names = set(self._registered())
        names.update(self._backend_namespaces())
        return sorted(names)

    def _ensure_loaded(self, namespace_id: str, space: _Namespace) -> None:
        # Called with space.lock held
        if space.loaded:
            return
        space.vectors = self._load_namespace(namespace_id)
        space.loaded = True

    def _persist_locked(self, namespace_id: str, space: _Namespace) -> bool:
        # Called with space.lock held
        try:
            self._persist_namespace(namespace_id, space.vectors)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to persist namespace {namespace_id}: {e}")
            space.dirty = True
            return False
        space.dirty = False
        return True

    def _delete_where(self, namespace_id: str, predicate) -> int:
        space = self._existing(namespace_id)
        if space is None:
            return 0
        with space.lock:
            self._ensure_loaded(namespace_id, space)
            kept = [v for v in space.vectors if not predicate(v)]
            removed = len(space.vectors) - len(kept)
            if removed:
                space.vectors = kept
                self._persist_locked(namespace_id, space)
        return removed

    @staticmethod
    def _project(vector: Vector, include_metadata: bool) -> dict[str, Any]:
        flat = vector.flat_metadata
        if include_metadata:
            return dict(flat)
        summary = {key: flat[key] for key in SUMMARY_KEYS if key in flat}
        summary["content"] = ""
        return summary


# ---------------------------------------------------------------------------
# FILE STORE (Production)
# ---------------------------------------------------------------------------


class FileVectorStore(InMemoryVectorStore):
    """
    Durable store: `<storage_dir>/<namespace>.json` per namespace.

    Each file is a JSON array of {"id", "values", "metadata"} records and is
    rewritten atomically after every mutation. A namespace left with no
    vectors has its file removed. Dot-files in the storage root (the
    embedding cache, the offline pattern index, temp files) are never
    treated as namespaces.
    """

    def __init__(self, storage_dir: Path | str = DEFAULT_STORAGE_DIR, dimension: int = 1536):
        super().__init__(dimension=dimension)
        self.storage_dir = Path(storage_dir)

    def _path(self, namespace_id: str) -> Path:
        return self.storage_dir / f"{namespace_id}.json"

    def _backend_namespaces(self) -> list[str]:
        if not self.storage_dir.is_dir():
            return []
        names = []
        for path in self.storage_dir.glob("*.json"):
            if path.name.startswith("."):
                continue
            try:
                names.append(validate_namespace_id(path.stem))
            except InvalidNamespaceError:
                logger.warning(f"Ignoring file with invalid namespace name: {path.name}")
        return sorted(names)

    def _backend_has(self, namespace_id: str) -> bool:
        try:
            validate_namespace_id(namespace_id)
        except InvalidNamespaceError:
            return False
        return self._path(namespace_id).exists()

    def _load_namespace(self, namespace_id: str) -> list[Vector]:
        path = self._path(namespace_id)
        if not path.exists():
            return []

        try:
            records = read_json(path)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read namespace file {path}: {e}")
            quarantine_file(path)
            return []

        if not isinstance(records, list):
            logger.error(f"Namespace file {path} does not hold a JSON array")
            quarantine_file(path)
            return []

        vectors: dict[str, Vector] = {}
        for record in records:
            vector = self._coerce(record) if isinstance(record, Mapping) else None
            if vector is None:
                continue
            if vector.namespace_id != namespace_id:
                logger.warning(
                    f"Vector {vector.id} in {path.name} belongs to namespace "
                    f"{vector.namespace_id}; keeping it in {namespace_id}"
                )
            vectors.pop(vector.id, None)
            vectors[vector.id] = vector

        logger.debug(f"Loaded {len(vectors)} vectors for namespace {namespace_id}")
        return list(vectors.values())

    def _persist_namespace(self, namespace_id: str, vectors: list[Vector]) -> None:
        path = self._path(namespace_id)
        if not vectors:
            if path.exists():
                path.unlink()
            return
        atomic_write_json(path, [v.to_dict() for v in vectors], indent=2)


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_vector_store(
    use_file: bool = True,
    storage_dir: Path | str | None = None,
    dimension: int = 1536,
) -> InMemoryVectorStore:
    """
    Factory function to get the appropriate vector store.

    Args:
        use_file: Use the JSON file store (default) or the in-memory store.
        storage_dir: Root directory for namespace files.
        dimension: Embedding dimension D every stored vector must have.
    """
    if use_file:
        return FileVectorStore(storage_dir or DEFAULT_STORAGE_DIR, dimension=dimension)
    return InMemoryVectorStore(dimension=dimension)
