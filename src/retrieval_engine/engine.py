"""
Retrieval engine - owns every component and their lifecycle.

There is no module-level engine state: build one RetrievalEngine per
process (usually with `from_config`) and pass it to whatever needs it.

USAGE:
------
engine = RetrievalEngine.from_config(record_source=my_source)
engine.start()
try:
    engine.notify_business_changed("biz-123")
    docs = engine.retrieve_relevant("biz-123", "what are your opening hours?")
finally:
    engine.shutdown()
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from retrieval_engine.config import EngineConfig, get_config
from retrieval_engine.core import BusinessRecordSource, EmbeddingProvider, VectorStore
from retrieval_engine.embeddings import (
    EmbeddingResolver,
    FileEmbeddingCache,
    OfflinePatternIndex,
    get_embedding_provider,
)
from retrieval_engine.errors import ConfigurationError, SyncError
from retrieval_engine.retrieval import (
    Document,
    FileVectorStore,
    RetrievalAdapter,
    RetrievalMode,
    format_chunks_for_context,
)
from retrieval_engine.sync import NamespaceSynchronizer, SyncQueue

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = ".embedding-cache.json"
PATTERNS_FILE_NAME = ".offline-patterns.json"


def _no_record_source(namespace_id: str) -> None:
    raise SyncError(f"No business record source configured; cannot sync {namespace_id}")


class RetrievalEngine:
    """
    Lifecycle container for store, resolver, adapter and sync queue.

    Every public operation of the engine is a thin delegation; the
    components can also be used directly through the attributes below.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: VectorStore,
        adapter: RetrievalAdapter,
        record_source: BusinessRecordSource | None = None,
        patterns: OfflinePatternIndex | None = None,
    ):
        self.config = config
        self.store = store
        self.adapter = adapter
        self.patterns = patterns
        self.record_source = record_source

        sync_fn = (
            NamespaceSynchronizer(record_source, adapter)
            if record_source is not None
            else _no_record_source
        )
        self.sync_queue = SyncQueue(
            sync_fn,
            max_retry_attempts=config.max_retry_attempts,
            retry_backoff_sec=config.retry_backoff_sec,
            sweep_interval_sec=config.sweep_interval_sec,
            workers=config.sync_workers,
            stats_provider=store.get_stats,
        )
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: EngineConfig | None = None,
        record_source: BusinessRecordSource | None = None,
        provider: EmbeddingProvider | None = None,
    ) -> "RetrievalEngine":
        """
        Build the production wiring: file store, file cache and pattern index
        under the storage root, OpenAI (or mock) embeddings.

        Raises:
            ConfigurationError: the config does not validate, or the provider
                dimension disagrees with EMBEDDING_DIM.
        """
        config = config or get_config()
        issues = config.validate()
        if issues:
            raise ConfigurationError(issues)

        provider = provider or get_embedding_provider(
            use_mock=config.use_mock_embeddings,
            model=config.embedding_model,
            api_key=config.openai_api_key,
            dimensions=config.embedding_dim,
            max_chars=config.embedding_max_chars,
            timeout=config.embedding_timeout_sec,
        )
        if provider.dimensions != config.embedding_dim:
            raise ConfigurationError(
                [f"Embedding provider dimension {provider.dimensions} != EMBEDDING_DIM {config.embedding_dim}"]
            )

        storage_dir = config.storage_dir
        store = FileVectorStore(storage_dir, dimension=config.embedding_dim)
        cache = FileEmbeddingCache(
            storage_dir / CACHE_FILE_NAME,
            ttl_sec=config.cache_ttl_sec,
            persist_interval_sec=config.cache_persist_interval_sec,
        )
        patterns = OfflinePatternIndex(
            threshold=config.offline_pattern_threshold,
            ttl_sec=config.cache_ttl_sec,
            file_path=storage_dir / PATTERNS_FILE_NAME,
            persist_interval_sec=config.cache_persist_interval_sec,
        )
        adapter = RetrievalAdapter(
            store,
            EmbeddingResolver(provider, cache, patterns),
            keyword_mode=config.keyword_mode,
        )
        logger.info(f"Retrieval engine configured with storage at {storage_dir}")
        return cls(config, store, adapter, record_source=record_source, patterns=patterns)

    # -----------------------------------------------------------------------
    # lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """Warm-load every namespace and start the sync sweep."""
        if self._started:
            return
        initialize = getattr(self.store, "initialize", None)
        if initialize is not None:
            initialize()
        self.sync_queue.start()
        self._started = True

    def shutdown(self, wait: bool = True) -> None:
        """Stop syncing and write out everything still pending."""
        self.sync_queue.shutdown(wait=wait)
        if not self.flush():
            logger.error("Some engine state could not be persisted at shutdown")
        self._started = False

    def flush(self) -> bool:
        """
        Write pending state: namespaces whose persist failed, and the
        embedding cache and pattern index changes held back by their
        persist interval. Returns False when any write failed.
        """
        ok = True
        for component in (self.store, self.adapter.resolver.cache, self.patterns):
            flush = getattr(component, "flush", None)
            if flush is not None and not flush():
                ok = False
        return ok

    def __enter__(self) -> "RetrievalEngine":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # -----------------------------------------------------------------------
    # public operations
    # -----------------------------------------------------------------------

    def store_document(self, document: Document, embedding: np.ndarray) -> bool:
        return self.adapter.store_document(document, embedding)

    def retrieve_relevant(
        self,
        namespace_id: str,
        query_text: str,
        limit: int = 5,
        mode: RetrievalMode | None = None,
    ) -> list[Document]:
        return self.adapter.retrieve_relevant(namespace_id, query_text, limit=limit, mode=mode)

    def delete_business_data(self, namespace_id: str) -> bool:
        return self.adapter.delete_business_data(namespace_id)

    def enqueue_sync(self, namespace_id: str, immediate: bool = True) -> bool:
        """Fire-and-forget sync request; False when coalesced."""
        return self.sync_queue.enqueue(namespace_id, immediate=immediate)

    def notify_business_changed(self, namespace_id: str, immediate: bool = True) -> bool:
        """
        Event hook for the system of record: a business was created, edited
        or deleted. Bulk importers pass immediate=False and call
        `sync_queue.process_pending()` once the batch is in.
        """
        logger.debug(f"Business changed: {namespace_id}")
        return self.sync_queue.enqueue(namespace_id, immediate=immediate)

    def get_sync_stats(self) -> dict[str, Any]:
        return self.sync_queue.get_stats()

    def get_store_stats(self) -> dict[str, Any]:
        return self.store.get_stats()

    def format_context(self, documents: list[Document]) -> str:
        return format_chunks_for_context(documents)

    def generate_offline_embeddings(self, limit: int = 100) -> int:
        """Fill embeddings for the most frequent query patterns that lack one."""
        if self.patterns is None:
            return 0
        return self.patterns.generate_offline_embeddings(self.adapter.resolver.provider, limit=limit)
