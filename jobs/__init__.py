"""Job management primitives for background generation."""

from .errors import JobExecutionError, JobPollTimeout, LostJobError  # noqa: F401
from .hub import SubscriptionHub  # noqa: F401
from .models import Job, JobStatus  # noqa: F401
from .poller import poll_job  # noqa: F401
from .scheduler import JobScheduler  # noqa: F401
from .store import JobStore  # noqa: F401

__all__ = [
    "Job",
    "JobExecutionError",
    "JobPollTimeout",
    "JobScheduler",
    "JobStatus",
    "JobStore",
    "LostJobError",
    "SubscriptionHub",
    "poll_job",
]
