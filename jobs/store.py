"""In-memory job store with guarded lifecycle transitions."""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from .models import Job, JobStatus, can_transition


class JobStore:
    """Thread-safe in-memory storage for jobs.

    Every mutator returns the updated snapshot, or ``None`` when the job is
    unknown or the requested transition is not allowed from its current
    status. Readers always receive detached snapshots.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job[Any, Any]] = {}
        self._lock = threading.RLock()

    def create(self, job: Job[Any, Any]) -> Job[Any, Any]:
        with self._lock:
            if job.id in self._jobs:
                raise KeyError(f"Job {job.id} already exists")
            stored = job.snapshot()
            self._jobs[job.id] = stored
            return stored.snapshot()

    def get(self, job_id: str) -> Optional[Job[Any, Any]]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    def status_of(self, job_id: str) -> Optional[JobStatus]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.status if job else None

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        mutator: Callable[[Job[Any, Any]], None],
    ) -> Optional[Job[Any, Any]]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or not can_transition(job.status, target):
                return None
            mutator(job)
            return job.snapshot()

    def mark_running(self, job_id: str) -> Optional[Job[Any, Any]]:
        return self._transition(job_id, JobStatus.RUNNING, lambda job: job.mark_running())

    def set_result(self, job_id: str, result: Any) -> Optional[Job[Any, Any]]:
        return self._transition(job_id, JobStatus.COMPLETED, lambda job: job.mark_completed(result))

    def set_failed(self, job_id: str, error: Dict[str, Any]) -> Optional[Job[Any, Any]]:
        return self._transition(job_id, JobStatus.FAILED, lambda job: job.mark_failed(error))

    def set_cancelled(self, job_id: str) -> Optional[Job[Any, Any]]:
        return self._transition(job_id, JobStatus.CANCELLED, lambda job: job.mark_cancelled())

    def record_late_outcome(
        self,
        job_id: str,
        *,
        result: Any = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> Optional[Job[Any, Any]]:
        """Attach the outcome of work that settled after the job was cancelled."""

        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != JobStatus.CANCELLED:
                return None
            job.late_result = result
            job.late_error = dict(error) if error is not None else None
            return job.snapshot()

    def update_progress(self, job_id: str, fraction: float, message: Optional[str] = None) -> Optional[Job[Any, Any]]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.is_terminal:
                return None
            job.update_progress(fraction, message)
            return job.snapshot()

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def clear_completed(self, *, job_type: Optional[str] = None, owner: Optional[str] = None) -> List[str]:
        with self._lock:
            removed = [
                job.id
                for job in self._jobs.values()
                if job.is_terminal and _matches(job, job_type, owner)
            ]
            for job_id in removed:
                del self._jobs[job_id]
            return removed

    def list_active(self, *, job_type: Optional[str] = None, owner: Optional[str] = None) -> List[Job[Any, Any]]:
        return self._select(lambda job: not job.is_terminal, job_type, owner)

    def list_completed(self, *, job_type: Optional[str] = None, owner: Optional[str] = None) -> List[Job[Any, Any]]:
        return self._select(lambda job: job.is_terminal, job_type, owner)

    def _select(
        self,
        predicate: Callable[[Job[Any, Any]], bool],
        job_type: Optional[str],
        owner: Optional[str],
    ) -> List[Job[Any, Any]]:
        with self._lock:
            selected = [
                job.snapshot()
                for job in self._jobs.values()
                if predicate(job) and _matches(job, job_type, owner)
            ]
        selected.sort(key=lambda job: job.created_at)
        return selected

    def __len__(self) -> int:  # pragma: no cover - trivial
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs


def _matches(job: Job[Any, Any], job_type: Optional[str], owner: Optional[str]) -> bool:
    if job_type is not None and job.type != job_type:
        return False
    if owner is not None and job.owner != owner:
        return False
    return True


__all__ = ["JobStore"]
