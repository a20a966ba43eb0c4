"""Background scheduler running job functions on a bounded worker pool."""
from __future__ import annotations

import contextlib
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from config import JOB_MAX_CONCURRENCY
from observability.logger import current_trace_id, get_logger, log_transition, trace_scope
from observability.metrics import get_registry

from .errors import JobExecutionError
from .hub import JobCallback, SubscriptionHub
from .models import Job, JobStatus
from .store import JobStore

LOGGER = get_logger("document_factory.jobs.scheduler")
REGISTRY = get_registry()
SUBMITTED_COUNTER = REGISTRY.counter("jobs.submitted_total")
ACTIVE_GAUGE = REGISTRY.gauge("jobs.active")
OUTCOME_COUNTERS = {
    JobStatus.COMPLETED: REGISTRY.counter("jobs.completed_total"),
    JobStatus.FAILED: REGISTRY.counter("jobs.failed_total"),
    JobStatus.CANCELLED: REGISTRY.counter("jobs.cancelled_total"),
}

ProgressCallback = Callable[..., None]


class JobScheduler:
    """Accept work, run it off the caller's thread and record the outcome.

    Each transition of a job happens under that job's own lock, together with
    the notification that announces it, so subscribers see transitions in
    order and a job settles at most once. Cancellation is advisory: running
    work is never interrupted.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        hub: Optional[SubscriptionHub] = None,
        *,
        max_workers: int = JOB_MAX_CONCURRENCY,
    ) -> None:
        self._store = store if store is not None else JobStore()
        self._hub = hub if hub is not None else SubscriptionHub()
        self._max_workers = max(1, int(max_workers))
        self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="job-worker")
        self._job_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def hub(self) -> SubscriptionHub:
        return self._hub

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def submit(
        self,
        job_type: str,
        payload: Any,
        fn: Callable[..., Any],
        *,
        owner: Optional[str] = None,
        trace_id: Optional[str] = None,
        with_progress: bool = False,
    ) -> str:
        job_id = f"{job_type}_{uuid.uuid4().hex}"
        job: Job[Any, Any] = Job(
            id=job_id,
            type=job_type,
            payload=payload,
            owner=owner,
            trace_id=trace_id or current_trace_id(),
        )
        with self._locks_guard:
            self._job_locks[job_id] = threading.RLock()
        self._hub.open(job_id)
        self._store.create(job)
        SUBMITTED_COUNTER.inc()
        ACTIVE_GAUGE.add(1)
        LOGGER.info("job_submitted", extra={"job_id": job_id, "job_type": job_type, "owner": owner})
        self._executor.submit(self._execute, job_id, fn, with_progress)
        return job_id

    def get(self, job_id: str) -> Optional[Job[Any, Any]]:
        return self._store.get(job_id)

    def cancel(self, job_id: str) -> bool:
        """Mark a non-terminal job cancelled. Returns ``False`` if it was not."""

        snapshot = self._transition(job_id, JobStatus.CANCELLED, self._store.set_cancelled)
        if snapshot is None:
            LOGGER.info("job_cancel_ignored", extra={"job_id": job_id, "status": _status_name(self._store.get(job_id))})
            return False
        return True

    def clear(self, job_id: str) -> bool:
        """Drop a job record. Work already running keeps running, unobserved."""

        lock = self._lock_for(job_id)
        with lock if lock is not None else contextlib.nullcontext():
            status = self._store.status_of(job_id)
            removed = self._store.delete(job_id)
            if removed and status is not None and not status.is_terminal:
                ACTIVE_GAUGE.add(-1)
        if removed:
            self._forget(job_id)
        return removed

    def clear_completed(self, *, job_type: Optional[str] = None, owner: Optional[str] = None) -> List[str]:
        removed = self._store.clear_completed(job_type=job_type, owner=owner)
        for job_id in removed:
            self._forget(job_id)
        return removed

    def list_active(self, job_type: Optional[str] = None, *, owner: Optional[str] = None) -> List[Job[Any, Any]]:
        return self._store.list_active(job_type=job_type, owner=owner)

    def list_completed(self, job_type: Optional[str] = None, *, owner: Optional[str] = None) -> List[Job[Any, Any]]:
        return self._store.list_completed(job_type=job_type, owner=owner)

    def subscribe(self, job_id: str, callback: JobCallback) -> Callable[[], None]:
        return self._hub.subscribe(job_id, callback)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until ``job_id`` is terminal. ``False`` on timeout or unknown id."""

        status = self._store.status_of(job_id)
        if status is None:
            return False
        if status.is_terminal:
            return True
        self._hub.wait(job_id, timeout)
        status = self._store.status_of(job_id)
        return bool(status and status.is_terminal)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _lock_for(self, job_id: str) -> Optional[threading.RLock]:
        with self._locks_guard:
            return self._job_locks.get(job_id)

    def _forget(self, job_id: str) -> None:
        with self._locks_guard:
            self._job_locks.pop(job_id, None)
        self._hub.discard(job_id)

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        apply: Callable[[str], Optional[Job[Any, Any]]],
    ) -> Optional[Job[Any, Any]]:
        lock = self._lock_for(job_id)
        if lock is None:
            return None
        with lock:
            before = self._store.status_of(job_id)
            snapshot = apply(job_id)
            if snapshot is None:
                return None
            log_transition(
                LOGGER,
                job_id=job_id,
                job_type=snapshot.type,
                previous=before.value if before else "unknown",
                status=target.value,
                duration_ms=snapshot.duration_ms,
            )
            if target.is_terminal:
                ACTIVE_GAUGE.add(-1)
                OUTCOME_COUNTERS[target].inc()
            self._hub.publish(snapshot)
            return snapshot

    def _execute(self, job_id: str, fn: Callable[..., Any], with_progress: bool) -> None:
        job = self._store.get(job_id)
        if job is None:
            LOGGER.warning("job_missing", extra={"job_id": job_id})
            return
        with trace_scope(job.trace_id):
            if self._transition(job_id, JobStatus.RUNNING, self._store.mark_running) is None:
                # Cancelled (or cleared) before a worker picked it up.
                LOGGER.info("job_skipped", extra={"job_id": job_id, "status": _status_name(self._store.get(job_id))})
                return

            try:
                if with_progress:
                    result = fn(job.payload, progress=self._progress_reporter(job_id))
                else:
                    result = fn(job.payload)
            except Exception as exc:  # noqa: BLE001
                error = JobExecutionError.from_exception(exc)
                LOGGER.warning(
                    "job_execution_failed",
                    extra={"job_id": job_id, "error": error.message, "error_type": error.error_type},
                )
                failed = self._transition(
                    job_id,
                    JobStatus.FAILED,
                    lambda key: self._store.set_failed(key, error.to_record()),
                )
                if failed is None:
                    self._record_late(job_id, error=error.to_record())
                return

            completed = self._transition(
                job_id,
                JobStatus.COMPLETED,
                lambda key: self._store.set_result(key, result),
            )
            if completed is None:
                self._record_late(job_id, result=result)

    def _record_late(self, job_id: str, *, result: Any = None, error: Optional[Dict[str, Any]] = None) -> None:
        lock = self._lock_for(job_id)
        if lock is None:
            LOGGER.info("job_settled_after_clear", extra={"job_id": job_id})
            return
        with lock:
            snapshot = self._store.record_late_outcome(job_id, result=result, error=error)
        if snapshot is not None:
            LOGGER.info(
                "job_settled_after_cancel",
                extra={"job_id": job_id, "late_error": (error or {}).get("message")},
            )

    def _progress_reporter(self, job_id: str) -> ProgressCallback:
        def report(fraction: float, message: Optional[str] = None) -> None:
            self._store.update_progress(job_id, fraction, message)

        return report


def _status_name(job: Optional[Job[Any, Any]]) -> str:
    return job.status.value if job else "missing"


__all__ = ["JobScheduler"]
