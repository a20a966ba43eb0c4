"""Flask application exposing background document generation over HTTP."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import JOB_MAX_CONCURRENCY, OPENAI_RPM, OPENAI_RPS, USE_MOCK_LLM
from documents import DocumentCatalog, SectionPipeline, ValidationError
from jobs import Job, JobScheduler
from observability.logger import bind_trace_id, clear_trace_id, get_logger
from observability.metrics import get_registry
from services.llm_client import ChatCompletionsGenerator, EchoGenerator

load_dotenv()

LOGGER = get_logger("document_factory.api")

EXTENSION_KEY = "document_factory"


class ApiError(Exception):
    """Exception translated into an HTTP error response."""

    def __init__(self, message: str, status_code: int = 400, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


def build_pipeline(catalog: Optional[DocumentCatalog] = None) -> SectionPipeline:
    generator = EchoGenerator() if USE_MOCK_LLM else ChatCompletionsGenerator()
    return SectionPipeline(generator, catalog)


def create_app(
    scheduler: Optional[JobScheduler] = None,
    pipeline: Optional[SectionPipeline] = None,
) -> Flask:
    app = Flask(__name__)
    if hasattr(app, "json"):
        app.json.ensure_ascii = False
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    app.extensions[EXTENSION_KEY] = {
        "scheduler": scheduler or JobScheduler(max_workers=JOB_MAX_CONCURRENCY),
        "pipeline": pipeline or build_pipeline(),
    }

    @app.before_request
    def _bind_request_trace() -> None:
        trace_id = request.headers.get("X-Trace-Id") or uuid.uuid4().hex
        g.trace_id = trace_id
        bind_trace_id(trace_id)

    @app.after_request
    def _append_trace(response):  # type: ignore[override]
        trace_id = getattr(g, "trace_id", None)
        if trace_id:
            response.headers.setdefault("X-Trace-Id", trace_id)
        return response

    @app.teardown_request
    def _teardown_trace(_exc):  # type: ignore[override]
        clear_trace_id()

    @app.errorhandler(ApiError)
    def _handle_api_error(exc: ApiError):  # type: ignore[override]
        LOGGER.warning("api_error", extra={"error": exc.message, "code": exc.status_code})
        body: Dict[str, Any] = {
            "message": exc.message,
            "code": exc.status_code,
            "trace_id": getattr(g, "trace_id", None),
        }
        if exc.details:
            body["details"] = exc.details
        return jsonify({"error": body}), exc.status_code

    @app.errorhandler(Exception)
    def _handle_generic_error(exc: Exception):  # type: ignore[override]
        if isinstance(exc, HTTPException):
            return jsonify({"error": {"message": exc.description, "code": exc.code}}), exc.code
        LOGGER.exception("unhandled_error")
        return (
            jsonify({"error": {"message": "Internal server error", "trace_id": getattr(g, "trace_id", None)}}),
            500,
        )

    @app.get("/api/document-types")
    def document_types():
        catalog = _pipeline().catalog
        return jsonify(
            {
                "subject_parameter": catalog.subject_parameter,
                "types": [doc_type.describe() for doc_type in catalog],
            }
        )

    @app.post("/api/documents/<doc_type>")
    def submit_document(doc_type: str):
        payload = _require_json(request)
        owner = _optional_str(payload.pop("owner", None))
        try:
            job_id = _pipeline().submit(
                _scheduler(),
                doc_type,
                payload,
                owner=owner,
                trace_id=getattr(g, "trace_id", None),
            )
        except ValidationError as exc:
            raise ApiError(str(exc), status_code=400, details=exc.details or None) from exc
        job = _scheduler().get(job_id)
        response_payload = _job_payload(job) if job else {"id": job_id}
        return jsonify(response_payload), 202

    @app.get("/api/jobs")
    def list_jobs():
        job_type = _optional_str(request.args.get("type"))
        owner = _optional_str(request.args.get("owner"))
        state = (request.args.get("state") or "").strip().lower()
        scheduler = _scheduler()
        if state not in {"", "active", "completed"}:
            raise ApiError("state must be 'active' or 'completed'")
        response_payload: Dict[str, List[Dict[str, Any]]] = {}
        if state in {"", "active"}:
            response_payload["active"] = [_job_payload(job) for job in scheduler.list_active(job_type, owner=owner)]
        if state in {"", "completed"}:
            response_payload["completed"] = [
                _job_payload(job) for job in scheduler.list_completed(job_type, owner=owner)
            ]
        return jsonify(response_payload)

    @app.get("/api/jobs/<job_id>")
    def job_status(job_id: str):
        job = _scheduler().get(job_id)
        if job is None:
            raise ApiError("Job not found", status_code=404)
        return jsonify(_job_payload(job))

    @app.post("/api/jobs/<job_id>/cancel")
    def cancel_job(job_id: str):
        scheduler = _scheduler()
        if scheduler.get(job_id) is None:
            raise ApiError("Job not found", status_code=404)
        if not scheduler.cancel(job_id):
            raise ApiError("Job already finished", status_code=409)
        job = scheduler.get(job_id)
        return jsonify(_job_payload(job) if job else {"id": job_id})

    @app.delete("/api/jobs/<job_id>")
    def clear_job(job_id: str):
        if not _scheduler().clear(job_id):
            raise ApiError("Job not found", status_code=404)
        return jsonify({"removed": [job_id]})

    @app.delete("/api/jobs")
    def clear_completed_jobs():
        if request.args.get("completed") not in {"1", "true", "yes"}:
            raise ApiError("Only completed jobs can be cleared in bulk; pass completed=1")
        removed = _scheduler().clear_completed(
            job_type=_optional_str(request.args.get("type")),
            owner=_optional_str(request.args.get("owner")),
        )
        return jsonify({"removed": removed})

    @app.get("/api/health")
    def health():
        scheduler = _scheduler()
        active = scheduler.list_active()
        catalog = _pipeline().catalog
        status = {
            "ok": True,
            "checks": {
                "job_scheduler": {
                    "ok": True,
                    "message": f"Active jobs: {len(active)}; workers={scheduler.max_workers}",
                },
                "rate_limits": {
                    "ok": True,
                    "message": f"Client limits: {OPENAI_RPS} rps / {OPENAI_RPM} rpm",
                },
                "document_catalog": {
                    "ok": len(catalog) > 0,
                    "message": f"Registered document types: {len(catalog)}",
                },
                "generator": {
                    "ok": True,
                    "message": "offline echo generator" if USE_MOCK_LLM else "chat completions backend",
                },
            },
            "metrics": get_registry().snapshot(),
        }
        status["ok"] = all(check["ok"] for check in status["checks"].values())
        return jsonify(status), 200 if status["ok"] else 503

    return app


def _scheduler() -> JobScheduler:
    return current_app.extensions[EXTENSION_KEY]["scheduler"]


def _pipeline() -> SectionPipeline:
    return current_app.extensions[EXTENSION_KEY]["pipeline"]


def _job_payload(job: Job[Any, Any]) -> Dict[str, Any]:
    return job.to_dict()


def _require_json(req) -> Dict[str, Any]:
    try:
        data = req.get_json(force=True)  # type: ignore[no-any-return]
    except Exception as exc:  # noqa: BLE001
        raise ApiError("Malformed JSON body") from exc
    if not isinstance(data, dict):
        raise ApiError("Expected a JSON object")
    return data


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["ApiError", "build_pipeline", "create_app"]
