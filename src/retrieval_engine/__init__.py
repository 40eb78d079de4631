"""
retrieval-engine - per-business semantic retrieval.

Namespace-partitioned vector storage with brute-force cosine search, an
embedding cache and offline pattern index in front of OpenAI embeddings, a
keyword fallback for when embeddings are unavailable, and a retrying sync
queue that keeps vectors consistent with the business system of record.
"""

__version__ = "0.1.0"

from retrieval_engine.config import EngineConfig, get_config, reset_config
from retrieval_engine.engine import RetrievalEngine
from retrieval_engine.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingUnavailableError,
    InvalidNamespaceError,
    RetrievalEngineError,
    SyncError,
)

__all__ = [
    "__version__",
    "EngineConfig",
    "get_config",
    "reset_config",
    "RetrievalEngine",
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingUnavailableError",
    "InvalidNamespaceError",
    "RetrievalEngineError",
    "SyncError",
]
