"""
Namespace synchronizer - one sync run for one business.

Fetches the current record from the system of record, derives its documents
and re-indexes them. A record that no longer exists removes the namespace's
vectors. Any exception propagates to the SyncQueue, which owns retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from retrieval_engine.retrieval.chunking import parse_business_to_chunks
from retrieval_engine.retrieval.document import Document

if TYPE_CHECKING:
    from retrieval_engine.core import BusinessRecordSource
    from retrieval_engine.retrieval.adapter import RetrievalAdapter
    from retrieval_engine.retrieval.chunking import BusinessRecord

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    namespace_id: str
    outcome: str  # "synced" or "deleted"
    document_count: int = 0


class NamespaceSynchronizer:
    """Callable sync function for SyncQueue."""

    def __init__(
        self,
        source: BusinessRecordSource,
        adapter: RetrievalAdapter,
        chunker: Callable[[BusinessRecord], list[Document]] = parse_business_to_chunks,
    ):
        self._source = source
        self._adapter = adapter
        self._chunker = chunker

    def __call__(self, namespace_id: str) -> SyncResult:
        return self.sync(namespace_id)

    def sync(self, namespace_id: str) -> SyncResult:
        record = self._source.fetch(namespace_id)
        if record is None:
            logger.info(f"No record for {namespace_id}; removing its vectors")
            self._adapter.delete_business_data(namespace_id)
            return SyncResult(namespace_id=namespace_id, outcome="deleted")

        documents = self._chunker(record)
        count = self._adapter.index_documents(namespace_id, documents)
        return SyncResult(namespace_id=namespace_id, outcome="synced", document_count=count)
