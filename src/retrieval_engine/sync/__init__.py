"""
Sync module - reconcile vector data with the system of record.

- SyncQueue: coalescing, retrying queue of namespace sync runs
- NamespaceSynchronizer: the sync run itself (fetch, chunk, index)
"""

from retrieval_engine.sync.queue import (
    DEFAULT_MAX_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SEC,
    DEFAULT_SWEEP_INTERVAL_SEC,
    SyncQueue,
    SyncState,
    SyncTask,
)
from retrieval_engine.sync.synchronizer import NamespaceSynchronizer, SyncResult

__all__ = [
    "DEFAULT_MAX_RETRY_ATTEMPTS",
    "DEFAULT_RETRY_BACKOFF_SEC",
    "DEFAULT_SWEEP_INTERVAL_SEC",
    "SyncQueue",
    "SyncState",
    "SyncTask",
    "NamespaceSynchronizer",
    "SyncResult",
]
