import sys
import threading
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from documents import DocumentCatalog, SectionPipeline  # noqa: E402
from jobs import JobScheduler  # noqa: E402
from server import create_app  # noqa: E402


class GatedGenerator:
    def __init__(self):
        self.release = threading.Event()
        self.release.set()

    def __call__(self, section, context):
        self.release.wait(5)
        if section.index == 2:
            raise RuntimeError("section two unavailable")
        return f"{section.title} text"


@pytest.fixture()
def generator():
    return GatedGenerator()


@pytest.fixture()
def scheduler():
    instance = JobScheduler(max_workers=2)
    yield instance
    instance.shutdown(wait=True)


@pytest.fixture()
def app(scheduler, generator):
    pipeline = SectionPipeline(generator, DocumentCatalog.load_default(), pacing_delay_s=0)
    app = create_app(scheduler=scheduler, pipeline=pipeline)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _submit(client, doc_type="nda", **extra):
    body = {"disease_name": "asthma", "additional_parameters": {"trade_name": "Brand"}}
    body.update(extra)
    return client.post(f"/api/documents/{doc_type}", json=body)


def test_document_types_listing(client):
    response = client.get("/api/document-types")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["subject_parameter"] == "disease_name"
    assert {item["type"] for item in payload["types"]} >= {"ind", "nda", "protocol"}


def test_submit_and_read_completed_job(client, scheduler):
    response = _submit(client, owner="alice")
    assert response.status_code == 202
    job = response.get_json()
    assert job["status"] in {"pending", "running", "completed"}
    assert job["owner"] == "alice"
    assert response.headers.get("X-Trace-Id")

    assert scheduler.wait(job["id"], timeout=5)
    payload = client.get(f"/api/jobs/{job['id']}").get_json()
    assert payload["status"] == "completed"
    result = payload["result"]
    assert result["metadata"]["sectionsGenerated"] == 5
    assert result["metadata"]["successRate"] == "80%"
    assert result["metadata"]["missingParameters"] == ["active_ingredient", "indication"]
    assert result["sections"][1]["title"].endswith("(GENERATION FAILED)")
    assert "document_content" in result


def test_submit_rejects_unknown_type(client, scheduler):
    response = _submit(client, doc_type="pma")
    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["message"] == "Unsupported document type: pma"
    assert "nda" in error["details"]["supported"]
    assert scheduler.list_active() == []


def test_submit_requires_subject(client):
    response = client.post("/api/documents/nda", json={"additional_parameters": {}})
    assert response.status_code == 400
    assert "disease_name" in response.get_json()["error"]["message"]


def test_submit_rejects_non_object_body(client):
    response = client.post("/api/documents/nda", json=["asthma"])
    assert response.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/nda_missing").status_code == 404
    assert client.post("/api/jobs/nda_missing/cancel").status_code == 404
    assert client.delete("/api/jobs/nda_missing").status_code == 404


def test_cancel_running_job_then_conflict(client, scheduler, generator):
    generator.release.clear()
    job_id = _submit(client).get_json()["id"]

    response = client.post(f"/api/jobs/{job_id}/cancel")
    assert response.status_code == 200
    assert response.get_json()["status"] == "cancelled"

    assert client.post(f"/api/jobs/{job_id}/cancel").status_code == 409
    generator.release.set()


def test_list_and_clear_jobs(client, scheduler):
    first = _submit(client, owner="alice").get_json()["id"]
    second = _submit(client, doc_type="bla", owner="bob").get_json()["id"]
    scheduler.wait(first, timeout=5)
    scheduler.wait(second, timeout=5)

    listing = client.get("/api/jobs?state=completed&owner=alice").get_json()
    assert [job["id"] for job in listing["completed"]] == [first]
    assert "active" not in listing

    assert client.get("/api/jobs?state=bogus").status_code == 400
    assert client.delete("/api/jobs").status_code == 400

    removed = client.delete("/api/jobs?completed=1&type=bla").get_json()["removed"]
    assert removed == [second]
    assert client.delete(f"/api/jobs/{first}").get_json() == {"removed": [first]}
    assert client.get(f"/api/jobs/{first}").status_code == 404


def test_health_reports_checks(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    assert set(payload["checks"]) == {"job_scheduler", "rate_limits", "document_catalog", "generator"}
    assert isinstance(payload["metrics"], dict)


def test_unknown_route_keeps_http_status(client):
    assert client.get("/api/nothing-here").status_code == 404
