"""
Semantic Conventions for Span Attributes

Attribute keys follow the OpenTelemetry GenAI conventions for the embedding
call, plus custom namespaces for retrieval and sync.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

GEN_AI_SYSTEM = "gen_ai.system"  # "openai"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"  # "text-embedding-3-small"
GEN_AI_OPERATION_NAME = "gen_ai.operation.name"  # "embeddings"


# ---------------------------------------------------------------------------
# RETRIEVAL NAMESPACE (custom)
# ---------------------------------------------------------------------------

RETRIEVAL_NAMESPACE_ID = "retrieval.namespace_id"
RETRIEVAL_MODE = "retrieval.mode"  # "vector", "keyword"
RETRIEVAL_LIMIT = "retrieval.limit"
RETRIEVAL_RESULT_COUNT = "retrieval.result_count"
RETRIEVAL_TOP_SCORE = "retrieval.top_score"
RETRIEVAL_QUERY_TEXT = "retrieval.query_text"  # only with PHOENIX_CAPTURE_QUERY_TEXT

# Indexing
RETRIEVAL_DOCUMENT_COUNT = "retrieval.document_count"
RETRIEVAL_STALE_REMOVED = "retrieval.stale_removed"


# ---------------------------------------------------------------------------
# EMBEDDING NAMESPACE (custom)
# ---------------------------------------------------------------------------

EMBEDDING_SOURCE = "embedding.source"  # "offline_pattern", "cache", "provider", "none"
EMBEDDING_DIMENSIONS = "embedding.dimensions"


# ---------------------------------------------------------------------------
# SYNC NAMESPACE (custom)
# ---------------------------------------------------------------------------

SYNC_NAMESPACE_ID = "sync.namespace_id"
SYNC_ATTEMPT = "sync.attempt"
SYNC_OUTCOME = "sync.outcome"  # "synced", "deleted", "failed"
SYNC_DOCUMENT_COUNT = "sync.document_count"
SYNC_ERROR = "sync.error"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def retrieval_attributes(
    namespace_id: str,
    mode: str,
    limit: int,
    query_text: str | None = None,
) -> dict:
    """Create attributes dict for a retrieve_relevant span."""
    attrs = {
        RETRIEVAL_NAMESPACE_ID: namespace_id,
        RETRIEVAL_MODE: mode,
        RETRIEVAL_LIMIT: limit,
    }
    if query_text is not None:
        attrs[RETRIEVAL_QUERY_TEXT] = query_text
    return attrs


def embedding_attributes(
    system: str,
    model: str,
    dimensions: int,
) -> dict:
    """Create attributes dict for an embedding provider call span."""
    return {
        GEN_AI_SYSTEM: system,
        GEN_AI_REQUEST_MODEL: model,
        GEN_AI_OPERATION_NAME: "embeddings",
        EMBEDDING_DIMENSIONS: dimensions,
    }


def sync_attributes(
    namespace_id: str,
    attempt: int,
    outcome: str,
    document_count: int | None = None,
    error: str | None = None,
) -> dict:
    """Create attributes dict for a sync run span."""
    attrs = {
        SYNC_NAMESPACE_ID: namespace_id,
        SYNC_ATTEMPT: attempt,
        SYNC_OUTCOME: outcome,
    }
    if document_count is not None:
        attrs[SYNC_DOCUMENT_COUNT] = document_count
    if error:
        attrs[SYNC_ERROR] = error
    return attrs
