"""
Retrieval module - namespace-partitioned vector search with keyword fallback.

This module provides:
- Document: The document model
- InMemoryVectorStore / FileVectorStore: VectorStore implementations
- get_vector_store(): Factory function
- KeywordFallbackRetriever: Degraded path when no embedding is available
- RetrievalAdapter: The store / retrieve / delete façade
- parse_business_to_chunks(): Business record -> documents

ARCHITECTURE:
-------------
1. Protocol defines the contract (in core.protocols)
2. Multiple implementations (FileVectorStore, InMemoryVectorStore)
3. Factory function for instantiation
4. Test doubles for fast unit tests
"""

# Document model
from retrieval_engine.retrieval.document import Document

# Store implementations and factory
from retrieval_engine.retrieval.store import (
    InMemoryVectorStore,
    FileVectorStore,
    get_vector_store,
    validate_namespace_id,
)

# Retrieval strategies
from retrieval_engine.retrieval.fallback import KeywordFallbackRetriever
from retrieval_engine.retrieval.adapter import (
    RetrievalAdapter,
    RetrievalMode,
    format_chunks_for_context,
)

# Business chunking
from retrieval_engine.retrieval.chunking import (
    BusinessRecord,
    BusinessProfile,
    InMemoryBusinessRecordSource,
    format_business_hours,
    parse_business_to_chunks,
)

__all__ = [
    # Document
    "Document",
    # Implementations
    "InMemoryVectorStore",
    "FileVectorStore",
    # Factory
    "get_vector_store",
    "validate_namespace_id",
    # Retrieval
    "KeywordFallbackRetriever",
    "RetrievalAdapter",
    "RetrievalMode",
    "format_chunks_for_context",
    # Chunking
    "BusinessRecord",
    "BusinessProfile",
    "InMemoryBusinessRecordSource",
    "format_business_hours",
    "parse_business_to_chunks",
]
