"""
Embeddings module - text embedding generation and reuse.

1. Protocol (EmbeddingProvider) defines the interface
2. Production implementation (OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_provider)

Reuse layers on top of the provider: EmbeddingCache (exact text hits),
OfflinePatternIndex (near-duplicate queries) and EmbeddingResolver, which
chains all three.
"""

from retrieval_engine.embeddings.openai_embeddings import (
    EmbeddingProvider,
    OpenAIEmbeddings,
    MockEmbeddings,
    get_embedding_provider,
    truncate_text,
)
from retrieval_engine.embeddings.cache import (
    CacheEntry,
    EmbeddingCache,
    InMemoryEmbeddingCache,
    FileEmbeddingCache,
    get_embedding_cache,
    normalize_text,
)
from retrieval_engine.embeddings.offline_patterns import (
    DEFAULT_SIMILARITY_THRESHOLD,
    OfflinePattern,
    OfflinePatternIndex,
)
from retrieval_engine.embeddings.resolver import (
    EmbeddingResolution,
    EmbeddingResolver,
    EmbeddingSource,
)

__all__ = [
    # Provider
    "EmbeddingProvider",
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "get_embedding_provider",
    "truncate_text",
    # Cache
    "CacheEntry",
    "EmbeddingCache",
    "InMemoryEmbeddingCache",
    "FileEmbeddingCache",
    "get_embedding_cache",
    "normalize_text",
    # Offline patterns
    "DEFAULT_SIMILARITY_THRESHOLD",
    "OfflinePattern",
    "OfflinePatternIndex",
    # Resolution chain
    "EmbeddingResolution",
    "EmbeddingResolver",
    "EmbeddingSource",
]
