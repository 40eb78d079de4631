"""
Embedding resolution chain - decide where a text's embedding comes from.

The same chain runs at index time and at query time:

1. Offline pattern: if the text has a cached embedding, the closest
   frequently-seen pattern above the similarity threshold is reused. The
   search starts from the text's own cached embedding, so this step
   canonicalises a cached text onto a popular near-duplicate; it never
   saves a provider call for a text that has not been embedded before.
2. Cache: exact (normalised) hit on the text.
3. Provider: cold path. A successful call is written through to the cache
   and the pattern index. The call runs inside an `embed_text` span.

Every resolve tracks the text's frequency in the pattern index, whatever the
outcome. Tracking is fire-and-forget: a failure is logged, never raised.

The result is explicit: `EmbeddingResolution.embedding` is None when nothing
could be produced, so callers never mistake a failed call for a real vector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from retrieval_engine.core import EmbeddingProvider
from retrieval_engine.embeddings.cache import EmbeddingCache
from retrieval_engine.embeddings.offline_patterns import OfflinePatternIndex
from retrieval_engine.observability import EMBEDDING_SOURCE, embedding_attributes, get_tracer
from retrieval_engine.similarity import is_zero_vector

logger = logging.getLogger(__name__)


class EmbeddingSource(str, Enum):
    """Where a resolved embedding came from."""

    OFFLINE_PATTERN = "offline_pattern"
    CACHE = "cache"
    PROVIDER = "provider"
    NONE = "none"


@dataclass
class EmbeddingResolution:
    """Outcome of resolving one text."""

    embedding: np.ndarray | None
    source: EmbeddingSource
    pattern: str | None = None

    @property
    def ok(self) -> bool:
        return self.embedding is not None


class EmbeddingResolver:
    """
    Resolves text to an embedding through pattern index, cache and provider.

    Dependencies are injected; the resolver holds no locks of its own. The
    cache and pattern index each guard their state with their own lock.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: EmbeddingCache,
        patterns: OfflinePatternIndex | None = None,
    ):
        self.provider = provider
        self.cache = cache
        self.patterns = patterns

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    def resolve(self, text: str) -> EmbeddingResolution:
        """Resolve `text` to an embedding, falling through the chain in order."""
        cached = self.cache.get(text)
        resolution = self._from_patterns(cached)

        if resolution is None and cached is not None:
            resolution = EmbeddingResolution(embedding=cached, source=EmbeddingSource.CACHE)

        if resolution is None:
            resolution = self._from_provider(text)

        keep = resolution.embedding if resolution.source in (
            EmbeddingSource.CACHE,
            EmbeddingSource.PROVIDER,
        ) else None
        self._track(text, keep)

        logger.debug(f"Resolved embedding via {resolution.source.value}")
        return resolution

    # -----------------------------------------------------------------------
    # chain steps
    # -----------------------------------------------------------------------

    def _from_patterns(self, cached: np.ndarray | None) -> EmbeddingResolution | None:
        if self.patterns is None or cached is None:
            return None
        if cached.shape != (self.provider.dimensions,):
            return None
        match = self.patterns.find_closest(cached)
        if match is None or match.embedding is None:
            return None
        return EmbeddingResolution(
            embedding=match.embedding.copy(),
            source=EmbeddingSource.OFFLINE_PATTERN,
            pattern=match.pattern,
        )

    def _from_provider(self, text: str) -> EmbeddingResolution:
        attributes = embedding_attributes(
            system=getattr(self.provider, "system", "unknown"),
            model=getattr(self.provider, "model", "unknown"),
            dimensions=self.provider.dimensions,
        )
        with get_tracer().start_span("embed_text", attributes=attributes) as span:
            embedding = self.provider.try_embed(text)
            failed = embedding is None or is_zero_vector(embedding)
            source = EmbeddingSource.NONE if failed else EmbeddingSource.PROVIDER
            span.set_attribute(EMBEDDING_SOURCE, source.value)

        if failed:
            logger.warning("Embedding provider returned no embedding")
            return EmbeddingResolution(embedding=None, source=EmbeddingSource.NONE)

        embedding = np.asarray(embedding, dtype=np.float64)
        self.cache.set(text, embedding)
        return EmbeddingResolution(embedding=embedding, source=EmbeddingSource.PROVIDER)

    def _track(self, text: str, embedding: np.ndarray | None) -> None:
        if self.patterns is None:
            return
        try:
            self.patterns.track(text, embedding)
        except Exception as e:
            logger.warning(f"Offline pattern tracking failed: {e}")
