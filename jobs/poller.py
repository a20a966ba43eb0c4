"""Polling consumer contract: re-read a job on an interval until it settles."""
from __future__ import annotations

import time
from typing import Any, Callable, Optional, Protocol

from config import JOB_POLL_INTERVAL_S, JOB_POLL_MAX_ATTEMPTS
from observability.logger import get_logger

from .errors import JobPollTimeout, LostJobError
from .models import Job

LOGGER = get_logger("document_factory.jobs.poller")


class JobReader(Protocol):
    def get(self, job_id: str) -> Optional[Job[Any, Any]]:
        ...


def poll_job(
    reader: JobReader,
    job_id: str,
    *,
    interval_s: float = JOB_POLL_INTERVAL_S,
    max_attempts: int = JOB_POLL_MAX_ATTEMPTS,
    missing_attempts: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> Job[Any, Any]:
    """Return the job's terminal snapshot.

    A failed or cancelled job is returned like a completed one; callers
    inspect ``status``. Raises :class:`LostJobError` once the job has been
    missing for ``missing_attempts`` consecutive reads and
    :class:`JobPollTimeout` when ``max_attempts`` reads pass without a
    terminal status.
    """

    max_attempts = max(1, int(max_attempts))
    missing_attempts = max(1, int(missing_attempts))
    missing = 0
    last_status = "unknown"
    for attempt in range(1, max_attempts + 1):
        job = reader.get(job_id)
        if job is None:
            missing += 1
            if missing >= missing_attempts:
                LOGGER.warning("job_lost", extra={"job_id": job_id, "attempts": attempt})
                raise LostJobError(job_id, attempt)
        else:
            missing = 0
            last_status = job.status.value
            if job.is_terminal:
                return job
        if attempt < max_attempts:
            sleep(interval_s)
    LOGGER.warning("job_poll_timeout", extra={"job_id": job_id, "attempts": max_attempts, "status": last_status})
    if missing:
        raise LostJobError(job_id, max_attempts)
    raise JobPollTimeout(job_id, max_attempts, last_status)


__all__ = ["JobReader", "poll_job"]
