"""Errors raised around background job execution and consumption."""
from __future__ import annotations

from typing import Any, Dict, Optional


class JobExecutionError(RuntimeError):
    """A job's top-level work raised; recorded on the job as a plain message."""

    def __init__(self, message: str, *, error_type: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type

    @classmethod
    def from_exception(cls, exc: BaseException) -> "JobExecutionError":
        if isinstance(exc, JobExecutionError):
            return exc
        message = str(exc) or exc.__class__.__name__
        return cls(message, error_type=exc.__class__.__name__)

    def to_record(self) -> Dict[str, Any]:
        return {"message": self.message, "type": self.error_type or self.__class__.__name__}


class LostJobError(LookupError):
    """A polling consumer could not find the job it was waiting on."""

    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(f"Job {job_id} not found after {attempts} poll attempt(s)")
        self.job_id = job_id
        self.attempts = attempts


class JobPollTimeout(TimeoutError):
    """The job still existed but never reached a terminal status in time."""

    def __init__(self, job_id: str, attempts: int, last_status: str) -> None:
        super().__init__(f"Job {job_id} still {last_status} after {attempts} poll attempt(s)")
        self.job_id = job_id
        self.attempts = attempts
        self.last_status = last_status


__all__ = ["JobExecutionError", "JobPollTimeout", "LostJobError"]
