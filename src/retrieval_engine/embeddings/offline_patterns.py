"""
Offline pattern index - reuse embeddings of frequently seen queries.

Every query text is tracked with a frequency counter. Patterns that carry an
embedding can stand in for a near-duplicate query: `find_closest` scans them
linearly and returns the best one only when its cosine similarity is above
the threshold (0.85 by default). The approximation error of reusing a
pattern's embedding is bounded by that floor.

The resolver searches the index with the text's own cached embedding, so a
pattern match canonicalises an already cached text onto its most popular
near-duplicate. It does not save a provider call for a text that has never
been embedded.

Tracking is fire-and-forget for callers: `track` is wrapped by the resolver
so a tracking failure never fails a query. With a `file_path` the index is
persisted at most once per `persist_interval_sec` and on `flush()`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Callable

import numpy as np

from retrieval_engine.config import ONE_WEEK_SEC
from retrieval_engine.embeddings.cache import normalize_text
from retrieval_engine.persistence import DebouncedJsonFile, quarantine_file, read_json
from retrieval_engine.similarity import cosine_similarity

if TYPE_CHECKING:
    from retrieval_engine.core import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85


@dataclass
class OfflinePattern:
    """A previously seen query text and, once known, its embedding."""

    pattern: str
    embedding: np.ndarray | None
    frequency: int
    last_updated: float

    def to_dict(self) -> dict:
        return {
            "embedding": None if self.embedding is None else self.embedding.tolist(),
            "frequency": self.frequency,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, pattern: str, data: dict) -> "OfflinePattern":
        raw = data.get("embedding")
        return cls(
            pattern=pattern,
            embedding=None if raw is None else np.asarray(raw, dtype=np.float64),
            frequency=int(data.get("frequency", 0)),
            last_updated=float(data.get("lastUpdated", 0.0)),
        )


class OfflinePatternIndex:
    """
    Frequency-tracked query patterns with optional JSON persistence.

    Pass `file_path` to persist the index across restarts; without it the
    index lives in memory only. Patterns expire `ttl_sec` after their last
    update.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        ttl_sec: float = ONE_WEEK_SEC,
        file_path: Path | str | None = None,
        clock: Callable[[], float] = time.time,
        persist_interval_sec: float = 30.0,
    ):
        self.threshold = threshold
        self.ttl_sec = ttl_sec
        self._path = Path(file_path) if file_path is not None else None
        self._clock = clock
        self._patterns: dict[str, OfflinePattern] = {}
        self._lock = threading.Lock()
        self._file: DebouncedJsonFile | None = None
        if self._path is not None:
            self._file = DebouncedJsonFile(
                self._path,
                self._payload,
                interval_sec=persist_interval_sec,
                label="offline patterns",
            )
            self._load()

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)

    def get(self, text: str) -> OfflinePattern | None:
        with self._lock:
            pattern = self._patterns.get(normalize_text(text))
            if pattern is None or self._is_expired(pattern, self._clock()):
                return None
            return replace(pattern)

    def track(self, text: str, embedding: np.ndarray | None = None) -> OfflinePattern:
        """Increment a pattern's frequency, recording its embedding when given."""
        key = normalize_text(text)
        now = self._clock()
        with self._lock:
            pattern = self._patterns.get(key)
            if pattern is None or self._is_expired(pattern, now):
                pattern = OfflinePattern(pattern=key, embedding=None, frequency=0, last_updated=now)
                self._patterns[key] = pattern
            pattern.frequency += 1
            pattern.last_updated = now
            if embedding is not None:
                pattern.embedding = np.asarray(embedding, dtype=np.float64).copy()
            tracked = replace(pattern)
            self._mark_changed()
        self._after_change()
        return tracked

    def find_closest(self, query_embedding: np.ndarray) -> OfflinePattern | None:
        """
        Best-scoring pattern above the threshold, or None.

        Only patterns with an embedding of the same dimension are candidates.
        Ties keep the more frequent pattern.
        """
        query_embedding = np.asarray(query_embedding, dtype=np.float64)
        now = self._clock()
        with self._lock:
            candidates = [
                replace(p) for p in self._patterns.values()
                if p.embedding is not None
                and p.embedding.shape == query_embedding.shape
                and not self._is_expired(p, now)
            ]

        best: OfflinePattern | None = None
        best_score = -1.0
        for pattern in candidates:
            score = cosine_similarity(query_embedding, pattern.embedding)
            if score <= self.threshold:
                continue
            if score > best_score or (score == best_score and best and pattern.frequency > best.frequency):
                best = pattern
                best_score = score
        return best

    def popular(self, limit: int = 100) -> list[OfflinePattern]:
        """Most frequent live patterns, highest first."""
        now = self._clock()
        with self._lock:
            live = [replace(p) for p in self._patterns.values() if not self._is_expired(p, now)]
        live.sort(key=lambda p: p.frequency, reverse=True)
        return live[:limit]

    def generate_offline_embeddings(self, provider: EmbeddingProvider, limit: int = 100) -> int:
        """
        Fill in embeddings for the most popular patterns that lack one.

        Returns the number of patterns that received an embedding. Provider
        failures are skipped; the pattern stays eligible for the next run.
        The index is flushed once at the end.
        """
        generated = 0
        for candidate in self.popular(limit):
            if candidate.embedding is not None:
                continue
            logger.info(f"Generating embedding for pattern: {candidate.pattern}")
            embedding = provider.try_embed(candidate.pattern)
            if embedding is None:
                continue
            with self._lock:
                pattern = self._patterns.get(candidate.pattern)
                if pattern is None:
                    continue
                pattern.embedding = np.asarray(embedding, dtype=np.float64)
                pattern.last_updated = self._clock()
                self._mark_changed()
            generated += 1
        self.flush()
        logger.info(f"Offline embeddings generation completed ({generated} new)")
        return generated

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, p in self._patterns.items() if self._is_expired(p, now)]
            for key in expired:
                del self._patterns[key]
            if expired:
                self._mark_changed()
        if expired:
            self._after_change()
        return len(expired)

    def flush(self) -> bool:
        """Write pending changes now. True when there was nothing to write."""
        if self._file is None:
            return True
        return self._file.flush()

    def stats(self) -> dict:
        with self._lock:
            with_embedding = sum(1 for p in self._patterns.values() if p.embedding is not None)
            return {"patterns": len(self._patterns), "withEmbedding": with_embedding}

    # -----------------------------------------------------------------------
    # internals
    # -----------------------------------------------------------------------

    def _is_expired(self, pattern: OfflinePattern, now: float) -> bool:
        return now - pattern.last_updated >= self.ttl_sec

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = read_json(self._path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load offline patterns {self._path}: {e}")
            quarantine_file(self._path)
            return

        if not isinstance(data, dict):
            logger.warning(f"Offline patterns file {self._path} does not hold a JSON object")
            quarantine_file(self._path)
            return

        for key, raw in data.items():
            try:
                self._patterns[key] = OfflinePattern.from_dict(key, raw)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed offline pattern {key!r}: {e}")
        logger.info(f"Loaded {len(self._patterns)} offline patterns from {self._path}")

    def _payload(self) -> dict:
        with self._lock:
            patterns = [replace(p) for p in self._patterns.values()]
        return {p.pattern: p.to_dict() for p in patterns}

    def _mark_changed(self) -> None:
        # Called with the lock held
        if self._file is not None:
            self._file.mark_dirty()

    def _after_change(self) -> None:
        if self._file is not None:
            self._file.maybe_flush()
