"""
Core module - shared protocols and result types.

USAGE:
------
from retrieval_engine.core import VectorStore, EmbeddingProvider

class MyVectorStore:
    '''Implements VectorStore protocol.'''
    ...
"""

from retrieval_engine.core.protocols import (
    # Protocols
    EmbeddingProvider,
    VectorStore,
    BusinessRecordSource,
    # Data classes
    QueryMatch,
    QueryResult,
)

__all__ = [
    # Protocols
    "EmbeddingProvider",
    "VectorStore",
    "BusinessRecordSource",
    # Data classes
    "QueryMatch",
    "QueryResult",
]
