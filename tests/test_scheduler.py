import sys
import threading
import time
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobs import JobScheduler, JobStatus  # noqa: E402
from observability.metrics import get_registry  # noqa: E402


@pytest.fixture()
def scheduler():
    instance = JobScheduler(max_workers=2)
    yield instance
    instance.shutdown(wait=True)


def _text(value):
    if value == "boom":
        raise RuntimeError("boom")
    return f"generated:{value}"


def test_job_is_pending_or_running_right_after_submit(scheduler):
    release = threading.Event()

    def blocked(payload):
        release.wait(5)
        return payload

    job_id = scheduler.submit("nda", "x", blocked)
    snapshot = scheduler.get(job_id)
    assert snapshot.status in (JobStatus.PENDING, JobStatus.RUNNING)
    assert snapshot.result is None
    assert job_id.startswith("nda_")

    release.set()
    assert scheduler.wait(job_id, timeout=5) is True
    assert scheduler.get(job_id).status == JobStatus.COMPLETED


def test_successful_job_completes_with_result(scheduler):
    job_id = scheduler.submit("nda", "ok", _text)
    assert scheduler.wait(job_id, timeout=5)
    job = scheduler.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.result == "generated:ok"
    assert job.error is None
    assert job.started_at <= job.completed_at


def test_failing_job_records_error_message(scheduler):
    job_id = scheduler.submit("nda", "boom", _text)
    assert scheduler.wait(job_id, timeout=5)
    job = scheduler.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.result is None
    assert "boom" in job.error["message"]
    assert job.error["type"] == "RuntimeError"


def test_get_is_idempotent_and_unknown_is_none(scheduler):
    job_id = scheduler.submit("nda", "ok", _text)
    scheduler.wait(job_id, timeout=5)
    first = scheduler.get(job_id)
    second = scheduler.get(job_id)
    assert first.status == second.status
    assert first.result == second.result
    assert scheduler.get("nda_missing") is None
    assert scheduler.wait("nda_missing", timeout=0.1) is False


def test_cancel_running_job_keeps_cancelled_and_late_result(scheduler):
    started = threading.Event()
    release = threading.Event()

    def slow(payload):
        started.set()
        release.wait(5)
        return "late text"

    job_id = scheduler.submit("bla", None, slow)
    assert started.wait(5)
    assert scheduler.cancel(job_id) is True
    assert scheduler.get(job_id).status == JobStatus.CANCELLED

    release.set()
    scheduler.shutdown(wait=True)
    job = scheduler.get(job_id)
    assert job.status == JobStatus.CANCELLED
    assert job.result is None
    assert job.late_result == "late text"


def test_cancelled_pending_job_never_runs():
    scheduler = JobScheduler(max_workers=1)
    release = threading.Event()
    calls = []

    def blocker(payload):
        release.wait(5)
        return "first"

    def record(payload):
        calls.append(payload)
        return "second"

    first = scheduler.submit("cta", None, blocker)
    second = scheduler.submit("cta", "queued", record)
    assert scheduler.get(second).status == JobStatus.PENDING
    assert scheduler.cancel(second) is True

    release.set()
    scheduler.shutdown(wait=True)
    assert calls == []
    assert scheduler.get(first).status == JobStatus.COMPLETED
    assert scheduler.get(second).status == JobStatus.CANCELLED
    assert scheduler.get(second).started_at is None


def test_cancel_terminal_or_unknown_job_returns_false(scheduler):
    job_id = scheduler.submit("nda", "ok", _text)
    scheduler.wait(job_id, timeout=5)
    assert scheduler.cancel(job_id) is False
    assert scheduler.cancel("nda_missing") is False
    assert scheduler.get(job_id).status == JobStatus.COMPLETED


def test_subscribers_see_transitions_in_order(scheduler):
    release = threading.Event()
    seen = []
    done = threading.Event()

    def gated(payload):
        release.wait(5)
        return "ok"

    def on_change(job):
        seen.append(job.status)
        if job.is_terminal:
            done.set()

    job_id = scheduler.submit("maa", None, gated)
    scheduler.subscribe(job_id, on_change)
    release.set()
    assert done.wait(5)
    assert seen[-1] == JobStatus.COMPLETED
    assert seen in ([JobStatus.RUNNING, JobStatus.COMPLETED], [JobStatus.COMPLETED])


def test_failing_subscriber_does_not_block_others(scheduler):
    release = threading.Event()
    received = []

    def gated(payload):
        release.wait(5)
        return "ok"

    def broken(_job):
        raise ValueError("subscriber bug")

    job_id = scheduler.submit("maa", None, gated)
    scheduler.subscribe(job_id, broken)
    scheduler.subscribe(job_id, lambda job: received.append(job.status))
    release.set()
    assert scheduler.wait(job_id, timeout=5)
    assert JobStatus.COMPLETED in received


def test_clear_and_clear_completed(scheduler):
    done_id = scheduler.submit("nda", "ok", _text, owner="alice")
    other_id = scheduler.submit("nda", "ok", _text, owner="bob")
    scheduler.wait(done_id, timeout=5)
    scheduler.wait(other_id, timeout=5)

    assert scheduler.clear(other_id) is True
    assert scheduler.get(other_id) is None
    assert scheduler.clear(other_id) is False

    assert scheduler.clear_completed(owner="alice") == [done_id]
    assert scheduler.get(done_id) is None


def test_listing_filters_by_type_and_owner(scheduler):
    ids = [
        scheduler.submit("nda", "ok", _text, owner="alice"),
        scheduler.submit("bla", "ok", _text, owner="alice"),
        scheduler.submit("nda", "ok", _text, owner="bob"),
    ]
    for job_id in ids:
        scheduler.wait(job_id, timeout=5)

    assert scheduler.list_active() == []
    assert [job.id for job in scheduler.list_completed("nda", owner="alice")] == [ids[0]]
    assert len(scheduler.list_completed(owner="alice")) == 2


def test_progress_reporter_updates_job(scheduler):
    midway = threading.Event()
    release = threading.Event()

    def with_progress(payload, progress):
        progress(0.5, message="half way")
        midway.set()
        release.wait(5)
        return "done"

    job_id = scheduler.submit("impd", None, with_progress, with_progress=True)
    assert midway.wait(5)
    snapshot = scheduler.get(job_id)
    assert snapshot.progress == 0.5
    assert snapshot.progress_message == "half way"

    release.set()
    scheduler.wait(job_id, timeout=5)
    assert scheduler.get(job_id).progress == 1.0


def test_trace_id_is_kept_on_job(scheduler):
    job_id = scheduler.submit("nda", "ok", _text, trace_id="trace-1")
    scheduler.wait(job_id, timeout=5)
    assert scheduler.get(job_id).trace_id == "trace-1"


def test_readers_cannot_change_stored_payload_or_result(scheduler):
    job_id = scheduler.submit("nda", {"disease_name": "asthma"}, lambda payload: {"text": "ok"})
    assert scheduler.wait(job_id, timeout=5)

    first = scheduler.get(job_id)
    first.payload["disease_name"] = "edited"
    first.result["text"] = "edited"

    second = scheduler.get(job_id)
    assert second.payload == {"disease_name": "asthma"}
    assert second.result == {"text": "ok"}


def test_clearing_running_job_releases_waiter_and_drops_outcome(scheduler):
    started = threading.Event()
    release = threading.Event()
    waited = []

    def slow(payload):
        started.set()
        release.wait(5)
        return "late text"

    job_id = scheduler.submit("bla", None, slow)
    assert started.wait(5)

    waiter = threading.Thread(target=lambda: waited.append(scheduler.wait(job_id)))
    waiter.start()
    time.sleep(0.05)
    clearer = threading.Thread(target=scheduler.clear, args=(job_id,))
    clearer.start()
    clearer.join(5)
    waiter.join(5)

    assert not waiter.is_alive()
    assert waited == [False]

    release.set()
    scheduler.shutdown(wait=True)
    assert scheduler.get(job_id) is None
    assert scheduler.list_active() == []
    assert scheduler.list_completed() == []


def test_clear_keeps_active_gauge_balanced(scheduler):
    gauge = get_registry().gauge("jobs.active")
    before = gauge.snapshot()
    started = threading.Event()
    release = threading.Event()

    def slow(payload):
        started.set()
        release.wait(5)
        return "done"

    running_id = scheduler.submit("bla", None, slow)
    finished_id = scheduler.submit("bla", "ok", _text)
    assert started.wait(5)
    assert scheduler.wait(finished_id, timeout=5)

    assert scheduler.clear(running_id) is True
    assert scheduler.clear(finished_id) is True
    release.set()
    scheduler.shutdown(wait=True)

    assert gauge.snapshot() == before


def test_subscribing_to_cleared_job_is_a_no_op(scheduler):
    job_id = scheduler.submit("nda", "ok", _text)
    assert scheduler.wait(job_id, timeout=5)
    scheduler.clear(job_id)

    unsubscribe = scheduler.subscribe(job_id, lambda job: None)
    unsubscribe()
    assert scheduler.hub.subscriber_count(job_id) == 0
    assert scheduler.wait(job_id) is False
