"""
Sync queue - keep vector data consistent with the system of record.

State machine per namespace (an idle namespace has no task at all):

    enqueue ──▶ QUEUED ──▶ RUNNING ──▶ (success) idle
                   ▲           │
                   │           ├──▶ FAILED     attempts < max, retry timer armed
                   └───────────┤
                               └──▶ ABANDONED  attempts == max, no automatic retry

COALESCING:
-----------
At most one sync per namespace is pending or in flight. Enqueueing a
namespace that is QUEUED or RUNNING is dropped and reported with False.

RETRIES:
--------
The n-th consecutive failure schedules a retry after n * backoff seconds
(5 s, 10 s with the defaults). Reaching the attempt cap abandons the
namespace: it shows up in stats and stays put until someone enqueues it
again, which resets its attempt counter. A periodic sweep re-enqueues FAILED
namespaces and drains the inbox of non-immediate requests.

Work runs on a ThreadPoolExecutor; retries use threading.Timer; all task
state lives behind one lock.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from retrieval_engine.observability import get_tracer, sync_attributes

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SEC = 5.0
DEFAULT_SWEEP_INTERVAL_SEC = 15 * 60


class SyncState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FAILED = "failed"
    ABANDONED = "abandoned"


@dataclass
class SyncTask:
    """Bookkeeping for one namespace that is not idle."""

    namespace_id: str
    state: SyncState
    attempts: int = 0
    next_retry_at: float | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "namespaceId": self.namespace_id,
            "state": self.state.value,
            "attempts": self.attempts,
            "nextRetryAt": self.next_retry_at,
            "lastError": self.last_error,
        }


class SyncQueue:
    """
    Coalescing, retrying queue of namespace sync runs.

    Args:
        sync_fn: Performs one sync of a namespace; raising means failure.
            Its return value is passed to nothing but the debug log.
        stats_provider: Optional callable whose result is reported as
            `vectorStoreStats` in get_stats().
    """

    def __init__(
        self,
        sync_fn: Callable[[str], Any],
        max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        retry_backoff_sec: float = DEFAULT_RETRY_BACKOFF_SEC,
        sweep_interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC,
        workers: int = 4,
        stats_provider: Callable[[], dict] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._sync_fn = sync_fn
        self.max_retry_attempts = max_retry_attempts
        self.retry_backoff_sec = retry_backoff_sec
        self.sweep_interval_sec = sweep_interval_sec
        self._stats_provider = stats_provider
        self._clock = clock

        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._tasks: dict[str, SyncTask] = {}
        self._inbox: dict[str, None] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._completed = 0
        self._closed = False

        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vector-sync")
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # -----------------------------------------------------------------------
    # lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep thread."""
        with self._lock:
            if self._sweeper is not None or self._closed:
                return
            self._sweeper = threading.Thread(
                target=self._sweep_loop, name="vector-sync-sweep", daemon=True
            )
            self._sweeper.start()
        logger.info(f"Sync queue started (sweep every {self.sweep_interval_sec}s)")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sweep, cancel retry timers and shut the worker pool down."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            sweeper = self._sweeper
            self._changed.notify_all()

        self._stop.set()
        if sweeper is not None and wait:
            sweeper.join()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Sync queue shut down")

    # -----------------------------------------------------------------------
    # public operations
    # -----------------------------------------------------------------------

    def enqueue(self, namespace_id: str, immediate: bool = True) -> bool:
        """
        Request a sync of a namespace.

        Returns False when the request was coalesced into a pending or
        running sync, or the queue is shut down. Non-immediate requests wait
        in the inbox for process_pending() or the sweep.
        """
        with self._lock:
            if self._closed:
                logger.warning(f"Sync queue is shut down; dropping {namespace_id}")
                return False

            task = self._tasks.get(namespace_id)
            if task is not None and task.state in (SyncState.QUEUED, SyncState.RUNNING):
                logger.debug(f"Sync for {namespace_id} already {task.state.value}; coalesced")
                return False

            if task is None:
                task = SyncTask(namespace_id=namespace_id, state=SyncState.QUEUED)
                self._tasks[namespace_id] = task
            else:
                if task.state is SyncState.ABANDONED:
                    logger.info(f"Re-enqueueing abandoned namespace {namespace_id}; attempts reset")
                    task.attempts = 0
                self._cancel_timer_locked(namespace_id)
                task.state = SyncState.QUEUED
                task.next_retry_at = None

            if immediate:
                self._submit_locked(namespace_id)
            else:
                self._inbox[namespace_id] = None
            self._changed.notify_all()
        return True

    def process_pending(self) -> int:
        """Submit every inbox request to the worker pool. Returns the count."""
        with self._lock:
            if self._closed:
                return 0
            pending = list(self._inbox)
            self._inbox.clear()
            submitted = 0
            for namespace_id in pending:
                task = self._tasks.get(namespace_id)
                if task is not None and task.state is SyncState.QUEUED:
                    self._submit_locked(namespace_id)
                    submitted += 1
        if submitted:
            logger.info(f"Processing {submitted} pending sync requests")
        return submitted

    def retry_failed(self) -> int:
        """Re-enqueue every FAILED namespace now, ahead of its retry timer."""
        with self._lock:
            if self._closed:
                return 0
            failed = [t for t in self._tasks.values() if t.state is SyncState.FAILED]
            for task in failed:
                self._cancel_timer_locked(task.namespace_id)
                task.state = SyncState.QUEUED
                task.next_retry_at = None
                self._submit_locked(task.namespace_id)
            self._changed.notify_all()
        if failed:
            logger.info(f"Retrying {len(failed)} failed namespaces")
        return len(failed)

    def sweep(self) -> int:
        """One sweep: retry FAILED namespaces and drain the inbox."""
        return self.retry_failed() + self.process_pending()

    def get_task(self, namespace_id: str) -> SyncTask | None:
        """Copy of a namespace's task, or None when it is idle."""
        with self._lock:
            task = self._tasks.get(namespace_id)
            return replace(task) if task is not None else None

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            by_state: dict[SyncState, list[str]] = {state: [] for state in SyncState}
            for task in self._tasks.values():
                by_state[task.state].append(task.namespace_id)
            stats: dict[str, Any] = {
                "queueSize": len(by_state[SyncState.QUEUED]),
                "running": len(by_state[SyncState.RUNNING]),
                "failed": len(by_state[SyncState.FAILED]),
                "abandoned": len(by_state[SyncState.ABANDONED]),
                "pendingIds": sorted(by_state[SyncState.QUEUED]),
                "failedIds": sorted(by_state[SyncState.FAILED]),
                "abandonedIds": sorted(by_state[SyncState.ABANDONED]),
                "completed": self._completed,
            }

        if self._stats_provider is not None:
            stats["vectorStoreStats"] = self._stats_provider()
        return stats

    def wait_idle(self, timeout: float | None = None) -> bool:
        """
        Block until no sync is submitted, running or waiting on a retry timer.

        Inbox requests and abandoned namespaces do not count as work.
        Returns False on timeout.
        """
        with self._changed:
            return self._changed.wait_for(self._is_idle_locked, timeout=timeout)

    # -----------------------------------------------------------------------
    # internals
    # -----------------------------------------------------------------------

    def _is_idle_locked(self) -> bool:
        if self._closed:
            return True
        for task in self._tasks.values():
            if task.state is SyncState.RUNNING:
                return False
            if task.state is SyncState.QUEUED and task.namespace_id not in self._inbox:
                return False
            if task.state is SyncState.FAILED and task.namespace_id in self._timers:
                return False
        return True

    def _submit_locked(self, namespace_id: str) -> None:
        self._inbox.pop(namespace_id, None)
        self._executor.submit(self._run, namespace_id)

    def _cancel_timer_locked(self, namespace_id: str) -> None:
        timer = self._timers.pop(namespace_id, None)
        if timer is not None:
            timer.cancel()

    def _run(self, namespace_id: str) -> None:
        with self._lock:
            task = self._tasks.get(namespace_id)
            if task is None or task.state is not SyncState.QUEUED or self._closed:
                return
            task.state = SyncState.RUNNING
            attempt = task.attempts + 1
            self._changed.notify_all()

        tracer = get_tracer()
        with tracer.start_span(
            "sync_namespace",
            attributes=sync_attributes(namespace_id, attempt, "running"),
        ) as span:
            try:
                result = self._sync_fn(namespace_id)
            except Exception as e:
                span.record_exception(e)
                span.set_attributes(sync_attributes(namespace_id, attempt, "failed", error=str(e)))
                span.set_status("error", str(e))
                self._on_failure(namespace_id, e)
                return
            outcome = getattr(result, "outcome", "synced")
            span.set_attributes(
                sync_attributes(
                    namespace_id,
                    attempt,
                    outcome,
                    document_count=getattr(result, "document_count", None),
                )
            )
            span.set_status("ok")

        with self._lock:
            self._tasks.pop(namespace_id, None)
            self._completed += 1
            self._changed.notify_all()
        logger.info(f"Synced namespace {namespace_id} (attempt {attempt})")
        logger.debug(f"Sync result for {namespace_id}: {result}")

    def _on_failure(self, namespace_id: str, error: Exception) -> None:
        with self._lock:
            task = self._tasks.get(namespace_id)
            if task is None:
                return
            task.attempts += 1
            task.last_error = str(error)

            if task.attempts >= self.max_retry_attempts:
                task.state = SyncState.ABANDONED
                task.next_retry_at = None
                logger.error(
                    f"Abandoning sync of {namespace_id} after {task.attempts} attempts: {error}"
                )
            else:
                delay = task.attempts * self.retry_backoff_sec
                task.state = SyncState.FAILED
                task.next_retry_at = self._clock() + delay
                logger.warning(
                    f"Sync of {namespace_id} failed (attempt {task.attempts}), "
                    f"retrying in {delay}s: {error}"
                )
                if not self._closed:
                    timer = threading.Timer(delay, self._retry, args=(namespace_id,))
                    timer.daemon = True
                    self._timers[namespace_id] = timer
                    timer.start()
            self._changed.notify_all()

    def _retry(self, namespace_id: str) -> None:
        with self._lock:
            # A cancelled timer can still fire; only the armed one may proceed
            if self._timers.get(namespace_id) is not threading.current_thread():
                return
            del self._timers[namespace_id]
            task = self._tasks.get(namespace_id)
            # Enqueued again meanwhile
            if task is None or task.state is not SyncState.FAILED or self._closed:
                self._changed.notify_all()
                return
            task.state = SyncState.QUEUED
            task.next_retry_at = None
            self._submit_locked(namespace_id)
            self._changed.notify_all()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval_sec):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Sync sweep failed: {e}")
