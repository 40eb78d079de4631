"""
Observability Module - Phoenix + OpenTelemetry Integration

Traces retrieval, indexing and sync runs with Arize Phoenix, and embedding
requests through OpenInference auto-instrumentation.

USAGE:
------
# At application startup:
from retrieval_engine.observability import init_phoenix

init_phoenix()  # Starts local Phoenix UI if PHOENIX_ENABLED=true

# In code that needs tracing:
from retrieval_engine.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("retrieve_relevant", attributes={...}) as span:
    span.set_attribute(RETRIEVAL_RESULT_COUNT, len(results))
"""

from __future__ import annotations

import logging

from retrieval_engine.observability.config import (
    PhoenixConfig,
    get_config,
    reset_config,
)
from retrieval_engine.observability.tracer import (
    TracerProtocol,
    SpanProtocol,
    NoOpTracer,
    NoOpSpan,
    get_tracer,
    reset_tracer,
)
from retrieval_engine.observability.attributes import (
    # GenAI
    GEN_AI_SYSTEM,
    GEN_AI_REQUEST_MODEL,
    GEN_AI_OPERATION_NAME,
    # Retrieval
    RETRIEVAL_NAMESPACE_ID,
    RETRIEVAL_MODE,
    RETRIEVAL_LIMIT,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_TOP_SCORE,
    RETRIEVAL_QUERY_TEXT,
    RETRIEVAL_DOCUMENT_COUNT,
    RETRIEVAL_STALE_REMOVED,
    # Embedding
    EMBEDDING_SOURCE,
    EMBEDDING_DIMENSIONS,
    # Sync
    SYNC_NAMESPACE_ID,
    SYNC_ATTEMPT,
    SYNC_OUTCOME,
    SYNC_DOCUMENT_COUNT,
    SYNC_ERROR,
    # Helpers
    retrieval_attributes,
    embedding_attributes,
    sync_attributes,
)

logger = logging.getLogger(__name__)

_phoenix_initialized = False


def init_phoenix(config: PhoenixConfig | None = None) -> bool:
    """
    Initialize Phoenix observability.

    Call once at startup. Installs an OpenTelemetry tracer provider that
    exports to Phoenix and registers the OpenAI auto-instrumentor.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if Phoenix was initialized, False if disabled or failed
    """
    global _phoenix_initialized
    if _phoenix_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Phoenix observability disabled")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        if config.collector_endpoint:
            endpoint = config.collector_endpoint
            logger.info(f"Phoenix connecting to remote: {endpoint}")
        else:
            import phoenix as px
            session = px.launch_app()
            endpoint = f"{session.url.rstrip('/')}/v1/traces"
            logger.info(f"Phoenix UI available at: {session.url}")

        resource = Resource.create({"openinference.project.name": config.project_name})
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)

        from retrieval_engine.observability.instrumentation import register_instrumentors
        register_instrumentors()

        reset_tracer()
        _phoenix_initialized = True
        return True

    except ImportError as e:
        logger.warning(f"Phoenix not installed, observability disabled: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to initialize Phoenix: {e}")
        return False


def shutdown_phoenix() -> None:
    """Flush pending spans and reset the tracer and config singletons."""
    global _phoenix_initialized

    if not _phoenix_initialized:
        return

    try:
        from opentelemetry import trace
        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.warning(f"Error shutting down Phoenix: {e}")

    reset_tracer()
    reset_config()
    _phoenix_initialized = False


__all__ = [
    # Initialization
    "init_phoenix",
    "shutdown_phoenix",
    # Config
    "PhoenixConfig",
    "get_config",
    "reset_config",
    # Tracer
    "TracerProtocol",
    "SpanProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "get_tracer",
    "reset_tracer",
    # Attributes - GenAI
    "GEN_AI_SYSTEM",
    "GEN_AI_REQUEST_MODEL",
    "GEN_AI_OPERATION_NAME",
    # Attributes - Retrieval
    "RETRIEVAL_NAMESPACE_ID",
    "RETRIEVAL_MODE",
    "RETRIEVAL_LIMIT",
    "RETRIEVAL_RESULT_COUNT",
    "RETRIEVAL_TOP_SCORE",
    "RETRIEVAL_QUERY_TEXT",
    "RETRIEVAL_DOCUMENT_COUNT",
    "RETRIEVAL_STALE_REMOVED",
    # Attributes - Embedding
    "EMBEDDING_SOURCE",
    "EMBEDDING_DIMENSIONS",
    # Attributes - Sync
    "SYNC_NAMESPACE_ID",
    "SYNC_ATTEMPT",
    "SYNC_OUTCOME",
    "SYNC_DOCUMENT_COUNT",
    "SYNC_ERROR",
    # Helpers
    "retrieval_attributes",
    "embedding_attributes",
    "sync_attributes",
]
