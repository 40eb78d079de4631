"""
Embedding cache - Protocol and implementations for reusing embeddings.

Following the gold standard pattern:
1. Protocol defines the interface
2. FileEmbeddingCache for production (durable across restarts)
3. InMemoryEmbeddingCache for testing (fast, no I/O)
4. Factory function for convenience

Keys are the text lowercased with whitespace collapsed, so "Opening  Hours"
and "opening hours" share one entry. Entries expire after a TTL (one week by
default) and are evicted lazily on read. The file-backed cache is written at
most once per persist interval and on `flush()`.

The cache is shared by every namespace, so it has its own lock; it never
takes a namespace lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable

import numpy as np

from retrieval_engine.config import ONE_WEEK_SEC
from retrieval_engine.persistence import DebouncedJsonFile, quarantine_file, read_json

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """Case-insensitive, whitespace-collapsed cache key."""
    return " ".join(text.lower().split())


# ---------------------------------------------------------------------------
# CACHE ENTRY
# ---------------------------------------------------------------------------


@dataclass
class CacheEntry:
    """One cached embedding."""

    key: str
    embedding: np.ndarray
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl

    def to_dict(self) -> dict:
        return {
            "embedding": self.embedding.tolist(),
            "insertedAt": self.inserted_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "CacheEntry":
        return cls(
            key=key,
            embedding=np.asarray(data["embedding"], dtype=np.float64),
            inserted_at=float(data["insertedAt"]),
            ttl=float(data["ttl"]),
        )


# ---------------------------------------------------------------------------
# CACHE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingCache(Protocol):
    """Protocol for embedding cache implementations."""

    def get(self, text: str) -> np.ndarray | None:
        """Cached embedding for text, None on miss or expiry."""
        ...

    def set(self, text: str, embedding: np.ndarray) -> None:
        """Store embedding for text with the cache TTL."""
        ...


# ---------------------------------------------------------------------------
# IN-MEMORY IMPLEMENTATION (Testing)
# ---------------------------------------------------------------------------


class InMemoryEmbeddingCache:
    """Thread-safe in-process cache with TTL expiry."""

    def __init__(
        self,
        ttl_sec: float = ONE_WEEK_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, text: str) -> np.ndarray | None:
        key = normalize_text(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if not entry.is_expired(self._clock()):
                self.hits += 1
                return entry.embedding.copy()
            del self._entries[key]
            self.misses += 1
            self._mark_changed()
        self._after_change()
        return None

    def set(self, text: str, embedding: np.ndarray) -> None:
        key = normalize_text(text)
        entry = CacheEntry(
            key=key,
            embedding=np.asarray(embedding, dtype=np.float64).copy(),
            inserted_at=self._clock(),
            ttl=self.ttl_sec,
        )
        with self._lock:
            self._entries[key] = entry
            self._mark_changed()
        self._after_change()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            if expired:
                self._mark_changed()
        if expired:
            self._after_change()
        return len(expired)

    def flush(self) -> bool:
        """Nothing to write for an in-memory cache."""
        return True

    def stats(self) -> dict:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def _mark_changed(self) -> None:
        """Hook called with the lock held after the entries change."""

    def _after_change(self) -> None:
        """Hook called after the lock is released."""


# ---------------------------------------------------------------------------
# FILE-BASED IMPLEMENTATION (Production)
# ---------------------------------------------------------------------------


class FileEmbeddingCache(InMemoryEmbeddingCache):
    """Durable cache persisted to a JSON file.

    The file is loaded once at construction. A file that cannot be parsed,
    or does not hold a JSON object, is moved aside and the cache starts
    empty. Changes are written atomically, at most once per
    `persist_interval_sec`, and whenever `flush()` is called. A failed write
    is logged; the in-memory entries remain usable.
    """

    def __init__(
        self,
        file_path: Path | str,
        ttl_sec: float = ONE_WEEK_SEC,
        clock: Callable[[], float] = time.time,
        persist_interval_sec: float = 30.0,
    ):
        super().__init__(ttl_sec=ttl_sec, clock=clock)
        self._path = Path(file_path)
        self._file = DebouncedJsonFile(
            self._path,
            self._payload,
            interval_sec=persist_interval_sec,
            label="embedding cache",
        )
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def flush(self) -> bool:
        return self._file.flush()

    def _load(self) -> None:
        if not self._path.exists():
            return

        try:
            data = read_json(self._path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load embedding cache {self._path}: {e}")
            quarantine_file(self._path)
            return

        if not isinstance(data, dict):
            logger.warning(f"Embedding cache {self._path} does not hold a JSON object")
            quarantine_file(self._path)
            return

        now = self._clock()
        for key, raw in data.items():
            try:
                entry = CacheEntry.from_dict(key, raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cache entry {key!r}: {e}")
                continue
            if not entry.is_expired(now):
                self._entries[key] = entry
        logger.info(f"Loaded {len(self._entries)} cached embeddings from {self._path}")

    def _payload(self) -> dict:
        with self._lock:
            entries = list(self._entries.values())
        return {entry.key: entry.to_dict() for entry in entries}

    def _mark_changed(self) -> None:
        self._file.mark_dirty()

    def _after_change(self) -> None:
        self._file.maybe_flush()


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_embedding_cache(
    use_file: bool = True,
    file_path: Path | str | None = None,
    ttl_sec: float = ONE_WEEK_SEC,
    persist_interval_sec: float = 30.0,
) -> EmbeddingCache:
    """
    Factory function for embedding caches.

    Args:
        use_file: If True, use FileEmbeddingCache. If False, use InMemoryEmbeddingCache.
        file_path: Path of the cache file (required when use_file is True).
        ttl_sec: Entry lifetime in seconds.
        persist_interval_sec: Minimum seconds between rewrites of the cache file.
    """
    if use_file:
        if file_path is None:
            raise ValueError("file_path is required for a file-backed embedding cache")
        return FileEmbeddingCache(file_path, ttl_sec=ttl_sec, persist_interval_sec=persist_interval_sec)
    return InMemoryEmbeddingCache(ttl_sec=ttl_sec)
