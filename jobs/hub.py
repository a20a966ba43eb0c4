"""Per-job notification topics shared by push subscribers and blocking waiters."""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from observability.logger import get_logger

from .models import Job

LOGGER = get_logger("document_factory.jobs.hub")

JobCallback = Callable[[Job[Any, Any]], None]


class _Topic:
    def __init__(self) -> None:
        self.callbacks: List[JobCallback] = []
        self.settled = threading.Event()


class SubscriptionHub:
    """Fan-out of job status changes.

    The scheduler publishes one snapshot per transition; each subscriber of
    that job receives it in transition order. A subscriber that raises is
    logged and skipped so the others still hear about the change. Topics
    live from `open` (at submit) until `discard` (at clear); nothing else
    creates them.
    """

    def __init__(self) -> None:
        self._topics: Dict[str, _Topic] = {}
        self._lock = threading.Lock()

    def open(self, job_id: str) -> None:
        """Create the topic for a newly submitted job."""

        with self._lock:
            self._topics.setdefault(job_id, _Topic())

    def _existing(self, job_id: str) -> Optional[_Topic]:
        with self._lock:
            return self._topics.get(job_id)

    def subscribe(self, job_id: str, callback: JobCallback) -> Callable[[], None]:
        """Register ``callback``; ids without an open topic get a no-op unsubscribe."""

        topic = self._existing(job_id)
        if topic is None:
            LOGGER.info("subscribe_unknown_job", extra={"job_id": job_id})
            return _noop
        with self._lock:
            topic.callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    topic.callbacks.remove(callback)
                except ValueError:
                    pass

        return unsubscribe

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            topic = self._topics.get(job_id)
            return len(topic.callbacks) if topic else 0

    def publish(self, job: Job[Any, Any]) -> None:
        topic = self._existing(job.id)
        if topic is None:
            return
        with self._lock:
            callbacks = list(topic.callbacks)
        for callback in callbacks:
            try:
                callback(job.snapshot())
            except Exception:  # noqa: BLE001
                LOGGER.exception("subscriber_failed", extra={"job_id": job.id, "status": job.status.value})
        if job.is_terminal:
            topic.settled.set()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until a terminal snapshot for ``job_id`` has been published.

        Returns ``False`` at once for ids without an open topic.
        """

        topic = self._existing(job_id)
        if topic is None:
            return False
        return topic.settled.wait(timeout)

    def discard(self, job_id: str) -> None:
        """Forget a job's topic once its record has been cleared."""

        with self._lock:
            topic = self._topics.pop(job_id, None)
        if topic is not None:
            # Release anyone still waiting on a job that no longer exists.
            topic.settled.set()


def _noop() -> None:
    return None


__all__ = ["JobCallback", "SubscriptionHub"]
