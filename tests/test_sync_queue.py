"""
Unit Tests for the Sync Queue

The queue runs sync functions on worker threads, so these tests coordinate
with threading.Event and SyncQueue.wait_idle() instead of sleeping for fixed
amounts of time. Backoffs are shrunk to milliseconds where retries must
actually fire, and stretched to a minute where they must not.

PATTERNS:
---------
1. `make_queue` fixture shuts every queue down after the test
2. Recording sync functions that fail a configurable number of times
3. State assertions go through get_task()/get_stats(), never private fields
"""

import threading
import time
from unittest.mock import patch

import pytest

from retrieval_engine.sync import SyncQueue, SyncState


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class RecordingSync:
    """Sync function that fails its first `failures` calls."""

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, namespace_id):
        with self._lock:
            self.calls.append(namespace_id)
            if len(self.calls) <= self.failures:
                raise RuntimeError(f"record source unavailable ({len(self.calls)})")
        return None


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def make_queue():
    queues = []

    def factory(sync_fn, **kwargs):
        kwargs.setdefault("retry_backoff_sec", 0.01)
        queue = SyncQueue(sync_fn, **kwargs)
        queues.append(queue)
        return queue

    yield factory
    for queue in queues:
        queue.shutdown()


# ---------------------------------------------------------------------------
# SUCCESS / COALESCING
# ---------------------------------------------------------------------------


class TestEnqueue:

    def test_successful_sync_leaves_namespace_idle(self, make_queue):
        sync = RecordingSync()
        queue = make_queue(sync)

        assert queue.enqueue("B1") is True
        assert queue.wait_idle(timeout=5)

        assert sync.calls == ["B1"]
        assert queue.get_task("B1") is None
        assert queue.get_stats()["completed"] == 1

    def test_enqueue_while_running_is_coalesced(self, make_queue):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def blocking_sync(namespace_id):
            calls.append(namespace_id)
            started.set()
            release.wait(5)

        queue = make_queue(blocking_sync)
        queue.enqueue("B1")
        assert started.wait(5)

        assert queue.get_task("B1").state is SyncState.RUNNING
        assert queue.enqueue("B1") is False

        release.set()
        assert queue.wait_idle(timeout=5)
        assert calls == ["B1"]

    def test_enqueue_while_queued_is_coalesced(self, make_queue):
        queue = make_queue(RecordingSync())

        assert queue.enqueue("B1", immediate=False) is True
        assert queue.enqueue("B1", immediate=False) is False
        assert queue.enqueue("B1") is False

        stats = queue.get_stats()
        assert stats["queueSize"] == 1
        assert stats["pendingIds"] == ["B1"]

    def test_different_namespaces_are_independent(self, make_queue):
        sync = RecordingSync()
        queue = make_queue(sync, workers=2)

        queue.enqueue("B1")
        queue.enqueue("B2")
        assert queue.wait_idle(timeout=5)

        assert sorted(sync.calls) == ["B1", "B2"]

    def test_enqueue_after_shutdown_is_dropped(self, make_queue):
        sync = RecordingSync()
        queue = make_queue(sync)
        queue.shutdown()

        assert queue.enqueue("B1") is False
        assert sync.calls == []


# ---------------------------------------------------------------------------
# RETRIES
# ---------------------------------------------------------------------------


class TestRetries:

    def test_transient_failure_is_retried(self, make_queue):
        sync = RecordingSync(failures=1)
        queue = make_queue(sync)

        queue.enqueue("B1")
        assert queue.wait_idle(timeout=5)

        assert sync.calls == ["B1", "B1"]
        assert queue.get_task("B1") is None

    def test_abandoned_after_max_attempts(self, make_queue):
        sync = RecordingSync(failures=100)
        queue = make_queue(sync, max_retry_attempts=3)

        queue.enqueue("B1")
        assert queue.wait_idle(timeout=5)

        assert len(sync.calls) == 3
        task = queue.get_task("B1")
        assert task.state is SyncState.ABANDONED
        assert task.attempts == 3
        assert "record source unavailable" in task.last_error

        stats = queue.get_stats()
        assert stats["abandoned"] == 1
        assert stats["abandonedIds"] == ["B1"]
        assert stats["failed"] == 0

    def test_abandoned_namespace_is_not_retried_by_sweep(self, make_queue):
        sync = RecordingSync(failures=100)
        queue = make_queue(sync, max_retry_attempts=1)

        queue.enqueue("B1")
        assert queue.wait_idle(timeout=5)

        assert queue.sweep() == 0
        assert len(sync.calls) == 1

    def test_re_enqueue_resets_attempts(self, make_queue):
        sync = RecordingSync(failures=2)
        queue = make_queue(sync, max_retry_attempts=2)

        queue.enqueue("B1")
        assert queue.wait_idle(timeout=5)
        assert queue.get_task("B1").state is SyncState.ABANDONED

        assert queue.enqueue("B1") is True
        assert queue.wait_idle(timeout=5)

        assert len(sync.calls) == 3
        assert queue.get_task("B1") is None

    def test_failed_task_reports_next_retry(self, make_queue):
        queue = make_queue(RecordingSync(failures=1), retry_backoff_sec=60, clock=lambda: 1000.0)

        queue.enqueue("B1")
        assert wait_for(lambda: queue.get_task("B1").state is SyncState.FAILED)

        task = queue.get_task("B1")
        assert task.attempts == 1
        assert task.next_retry_at == 1060.0
        assert queue.get_stats()["failedIds"] == ["B1"]

    def test_backoff_grows_linearly_with_attempts(self, make_queue):
        queue = make_queue(RecordingSync(failures=2), retry_backoff_sec=60, clock=lambda: 1000.0)

        with patch.object(threading, "Timer", wraps=threading.Timer) as timer:
            queue.enqueue("B1")
            assert wait_for(lambda: queue.get_task("B1").state is SyncState.FAILED)
            assert queue.get_task("B1").next_retry_at == 1060.0

            assert queue.retry_failed() == 1
            assert wait_for(lambda: queue.get_task("B1").attempts == 2)
            assert wait_for(lambda: queue.get_task("B1").state is SyncState.FAILED)

        task = queue.get_task("B1")
        assert task.next_retry_at == 1120.0
        assert [c.args[0] for c in timer.call_args_list] == [60, 120]

    def test_retry_failed_runs_before_backoff_expires(self, make_queue):
        sync = RecordingSync(failures=1)
        queue = make_queue(sync, retry_backoff_sec=60)

        queue.enqueue("B1")
        assert wait_for(lambda: queue.get_task("B1").state is SyncState.FAILED)

        assert queue.retry_failed() == 1
        assert queue.wait_idle(timeout=5)
        assert sync.calls == ["B1", "B1"]


# ---------------------------------------------------------------------------
# DEFERRED REQUESTS / SWEEP
# ---------------------------------------------------------------------------


class TestPendingAndSweep:

    def test_process_pending_submits_inbox(self, make_queue):
        sync = RecordingSync()
        queue = make_queue(sync)

        queue.enqueue("B1", immediate=False)
        queue.enqueue("B2", immediate=False)
        assert sync.calls == []

        assert queue.process_pending() == 2
        assert queue.wait_idle(timeout=5)
        assert sorted(sync.calls) == ["B1", "B2"]

    def test_sweep_retries_failed_and_drains_inbox(self, make_queue):
        sync = RecordingSync(failures=1)
        queue = make_queue(sync, retry_backoff_sec=60)

        queue.enqueue("B1")
        assert wait_for(lambda: queue.get_task("B1").state is SyncState.FAILED)
        queue.enqueue("B2", immediate=False)

        assert queue.sweep() == 2
        assert queue.wait_idle(timeout=5)
        assert sorted(sync.calls) == ["B1", "B1", "B2"]

    def test_background_sweep_runs_periodically(self, make_queue):
        sync = RecordingSync()
        queue = make_queue(sync, sweep_interval_sec=0.02)
        queue.enqueue("B1", immediate=False)

        queue.start()

        assert wait_for(lambda: sync.calls == ["B1"])


# ---------------------------------------------------------------------------
# STATS
# ---------------------------------------------------------------------------


class TestStats:

    def test_empty_stats(self, make_queue):
        stats = make_queue(RecordingSync()).get_stats()
        assert stats == {
            "queueSize": 0,
            "running": 0,
            "failed": 0,
            "abandoned": 0,
            "pendingIds": [],
            "failedIds": [],
            "abandonedIds": [],
            "completed": 0,
        }

    def test_includes_vector_store_stats(self, make_queue):
        queue = make_queue(RecordingSync(), stats_provider=lambda: {"totalVectors": 7})
        assert queue.get_stats()["vectorStoreStats"] == {"totalVectors": 7}

    def test_task_to_dict(self, make_queue):
        queue = make_queue(RecordingSync())
        queue.enqueue("B1", immediate=False)

        assert queue.get_task("B1").to_dict() == {
            "namespaceId": "B1",
            "state": "queued",
            "attempts": 0,
            "nextRetryAt": None,
            "lastError": None,
        }


# ---------------------------------------------------------------------------
# SYNCHRONIZER
# ---------------------------------------------------------------------------


class TestNamespaceSynchronizer:

    def test_existing_record_is_chunked_and_indexed(self):
        from unittest.mock import MagicMock
        from retrieval_engine.sync import NamespaceSynchronizer

        source = MagicMock()
        adapter = MagicMock()
        adapter.index_documents.return_value = 4
        chunker = MagicMock(return_value=["doc"] * 4)

        result = NamespaceSynchronizer(source, adapter, chunker=chunker)("B1")

        chunker.assert_called_once_with(source.fetch.return_value)
        adapter.index_documents.assert_called_once_with("B1", ["doc"] * 4)
        assert (result.outcome, result.document_count) == ("synced", 4)

    def test_missing_record_deletes_namespace(self):
        from unittest.mock import MagicMock
        from retrieval_engine.sync import NamespaceSynchronizer

        source = MagicMock()
        source.fetch.return_value = None
        adapter = MagicMock()

        result = NamespaceSynchronizer(source, adapter)("B1")

        adapter.delete_business_data.assert_called_once_with("B1")
        adapter.index_documents.assert_not_called()
        assert result.outcome == "deleted"

    def test_index_errors_propagate(self):
        from unittest.mock import MagicMock
        from retrieval_engine.errors import EmbeddingUnavailableError
        from retrieval_engine.sync import NamespaceSynchronizer

        adapter = MagicMock()
        adapter.index_documents.side_effect = EmbeddingUnavailableError("no embedding")

        with pytest.raises(EmbeddingUnavailableError):
            NamespaceSynchronizer(MagicMock(), adapter, chunker=lambda record: [])("B1")
