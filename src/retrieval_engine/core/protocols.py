"""
Core protocols defining contracts for the retrieval engine.

All infrastructure components implement these protocols, so the façade and
the sync queue can be tested with in-memory doubles:

- EmbeddingProvider: text -> vector (OpenAIEmbeddings, MockEmbeddings)
- VectorStore: namespace-partitioned vector persistence and search
  (FileVectorStore, InMemoryVectorStore)
- BusinessRecordSource: the external system of record the sync queue
  reconciles against
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from retrieval_engine.retrieval.chunking import BusinessRecord
    from retrieval_engine.schemas.metadata import Vector


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    `embed` never raises: on failure it returns an all-zero vector, which
    scores 0 against everything. `try_embed` returns None instead so callers
    can tell "no embedding" apart from "low similarity".
    """

    @property
    def dimensions(self) -> int:
        """Embedding dimension D."""
        ...

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text (zero vector on failure)."""
        ...

    def try_embed(self, text: str) -> np.ndarray | None:
        """Generate embedding for a single text (None on failure)."""
        ...


# ---------------------------------------------------------------------------
# VECTOR STORE PROTOCOL
# ---------------------------------------------------------------------------


@dataclass
class QueryMatch:
    """A single scored match returned by a store or the keyword retriever."""

    id: str
    score: float
    metadata: dict[str, Any]


@dataclass
class QueryResult:
    """Ranked matches for one query."""

    matches: list[QueryMatch] = field(default_factory=list)
    namespace: str = ""


@runtime_checkable
class VectorStore(Protocol):
    """
    Contract for namespace-partitioned vector storage.

    Implementations:
    - FileVectorStore (one JSON file per namespace)
    - InMemoryVectorStore (testing)
    """

    @property
    def dimension(self) -> int:
        ...

    def upsert(self, vectors: list[Vector]) -> bool:
        """Insert or replace vectors by id. False only on a persist fault; never raises."""
        ...

    def query(
        self,
        vector: np.ndarray,
        filter: Mapping[str, Any] | None = None,
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> QueryResult:
        """Top-K cosine similarity search."""
        ...

    def delete_one(self, vector_id: str) -> bool:
        """Delete a vector by id from whichever namespace holds it."""
        ...

    def delete_many(self, filter: Mapping[str, Any]) -> int:
        """Delete every vector matching the filter; returns the count."""
        ...

    def delete_ids(self, namespace_id: str, vector_ids: Iterable[str]) -> int:
        """Delete the given ids from one namespace only; returns the count."""
        ...

    def snapshot(self, namespace_id: str) -> list[Vector]:
        """Copy of a namespace's vectors in insertion order."""
        ...

    def get_stats(self) -> dict[str, Any]:
        """Namespace and vector counts."""
        ...


# ---------------------------------------------------------------------------
# SYSTEM OF RECORD PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class BusinessRecordSource(Protocol):
    """
    Contract for the system of record that owns business data.

    Implementations live outside this package (the marketplace database);
    InMemoryBusinessRecordSource is the test double.
    """

    def fetch(self, namespace_id: str) -> BusinessRecord | None:
        """Load the current record for a business, or None if it no longer exists."""
        ...
