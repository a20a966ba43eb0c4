"""Data models describing background generation jobs."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

PayloadT = TypeVar("PayloadT")
ResultT = TypeVar("ResultT")


def utcnow() -> datetime:
    """Return a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(ISO_FORMAT) if value else None


class JobStatus(str, Enum):
    """Lifecycle states for a background job.

    ``PENDING -> RUNNING -> {COMPLETED | FAILED | CANCELLED}``; a job may also
    be cancelled straight from ``PENDING``.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class Job(Generic[PayloadT, ResultT]):
    """A tracked unit of asynchronous work.

    ``result`` is set only on completion and ``error`` only on failure. A job
    cancelled while running keeps whatever the work eventually produced in
    ``late_result``/``late_error`` so callers can decide whether to reuse it.
    """

    id: str
    type: str
    payload: PayloadT
    status: JobStatus = JobStatus.PENDING
    owner: Optional[str] = None
    trace_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[ResultT] = None
    error: Optional[Dict[str, Any]] = None
    late_result: Optional[ResultT] = None
    late_error: Optional[Dict[str, Any]] = None
    progress: float = 0.0
    progress_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> Optional[int]:
        if not self.started_at or not self.completed_at:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def mark_running(self) -> None:
        self.status = JobStatus.RUNNING
        self.started_at = self.started_at or utcnow()

    def mark_completed(self, result: ResultT) -> None:
        self.status = JobStatus.COMPLETED
        self.result = result
        self.progress = 1.0
        self.completed_at = utcnow()

    def mark_failed(self, error: Dict[str, Any]) -> None:
        self.status = JobStatus.FAILED
        self.error = dict(error)
        self.completed_at = utcnow()

    def mark_cancelled(self) -> None:
        self.status = JobStatus.CANCELLED
        self.completed_at = utcnow()

    def update_progress(self, fraction: float, message: Optional[str] = None) -> None:
        try:
            value = float(fraction)
        except (TypeError, ValueError):
            value = self.progress
        # Progress never moves backwards.
        self.progress = max(self.progress, min(1.0, max(0.0, value)))
        if message is not None:
            self.progress_message = message

    def snapshot(self) -> "Job[PayloadT, ResultT]":
        """Detached copy for readers; frozen results are shared, everything else is copied."""

        clone = copy.copy(self)
        clone.payload = _detach(self.payload)
        clone.result = _detach(self.result)
        clone.late_result = _detach(self.late_result)
        clone.error = dict(self.error) if self.error is not None else None
        clone.late_error = dict(self.late_error) if self.late_error is not None else None
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status.value,
            "owner": self.owner,
            "trace_id": self.trace_id,
            "payload": self.payload,
            "created_at": _fmt(self.created_at),
            "started_at": _fmt(self.started_at),
            "completed_at": _fmt(self.completed_at),
            "duration_ms": self.duration_ms,
            "progress": round(self.progress, 4),
            "progress_message": self.progress_message,
            "result": _serialize(self.result),
            "error": self.error,
            "late_result": _serialize(self.late_result),
            "late_error": self.late_error,
        }


def _detach(value: Any) -> Any:
    params = getattr(value, "__dataclass_params__", None)
    if params is not None and params.frozen:
        return value
    return copy.deepcopy(value)


def _serialize(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return value


__all__ = [
    "ISO_FORMAT",
    "Job",
    "JobStatus",
    "TERMINAL_STATUSES",
    "can_transition",
    "utcnow",
]
