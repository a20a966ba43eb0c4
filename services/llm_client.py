"""HTTP generation backend for single document sections."""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional

import httpx

from config import OPENAI_API_KEY, OPENAI_API_URL, OPENAI_RPM, OPENAI_RPS, OPENAI_TIMEOUT_S
from documents.catalog import SectionSpec
from documents.context import SectionContext
from observability.logger import get_logger
from prompt_templates import render_template

LOGGER = get_logger("document_factory.services.llm_client")

SYSTEM_TEMPLATE = "section_system.txt"
USER_TEMPLATE = "section_user.txt"


class GenerationBackendError(RuntimeError):
    """The backend could not be reached or answered with an error status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyCompletionError(GenerationBackendError):
    """The backend answered successfully but without any text."""


class _RateLimiter:
    """Sliding per-second and per-minute windows shared by all callers."""

    def __init__(
        self,
        *,
        rps: int,
        rpm: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rps = max(1, rps)
        self._rpm = max(self._rps, rpm)
        self._per_second: deque[float] = deque()
        self._per_minute: deque[float] = deque()
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def acquire(self) -> None:
        while True:
            with self._lock:
                now = self._clock()
                self._trim(now)
                if len(self._per_second) < self._rps and len(self._per_minute) < self._rpm:
                    self._per_second.append(now)
                    self._per_minute.append(now)
                    return
                waits: List[float] = []
                if len(self._per_second) >= self._rps:
                    waits.append(1.0 - (now - self._per_second[0]))
                if len(self._per_minute) >= self._rpm:
                    waits.append(60.0 - (now - self._per_minute[0]))
            self._sleep(max(0.05, min(waits) if waits else 0.05))

    def _trim(self, now: float) -> None:
        while self._per_second and now - self._per_second[0] >= 1.0:
            self._per_second.popleft()
        while self._per_minute and now - self._per_minute[0] >= 60.0:
            self._per_minute.popleft()


def build_messages(section: SectionSpec, context: SectionContext) -> List[Dict[str, str]]:
    document = context.document
    system = render_template(
        SYSTEM_TEMPLATE,
        expertise=document.expertise,
        document_label=document.label,
        framework=document.framework,
    )
    user = render_template(
        USER_TEMPLATE,
        section_index=section.index,
        section_total=context.total_sections,
        section_title=section.title,
        subject=context.subject,
        parameters=context.formatted_parameters,
        directive=section.directive,
        focus=section.focus or section.directive,
        previous_sections=context.previous_sections_text(),
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


class ChatCompletionsGenerator:
    """Section generator backed by an OpenAI-compatible chat completions API.

    One HTTP request per section, no retries: a failed request surfaces as an
    exception and the pipeline substitutes a placeholder for that section.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        api_url: str = OPENAI_API_URL,
        timeout_s: float = OPENAI_TIMEOUT_S,
        http_client: Optional[httpx.Client] = None,
        rate_limiter: Optional[_RateLimiter] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else OPENAI_API_KEY
        self._api_url = api_url
        self._timeout_s = timeout_s
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout=timeout_s, connect=min(20.0, timeout_s)),
            headers={"Connection": "keep-alive"},
        )
        self._limiter = rate_limiter or _RateLimiter(rps=OPENAI_RPS, rpm=OPENAI_RPM)

    def close(self) -> None:
        self._client.close()

    def __call__(self, section: SectionSpec, context: SectionContext) -> str:
        if not self._api_key:
            raise GenerationBackendError("OPENAI_API_KEY is not configured")
        payload: Dict[str, Any] = dict(context.profile.request_options())
        payload["messages"] = build_messages(section, context)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        self._limiter.acquire()
        started_at = time.perf_counter()
        try:
            response = self._client.post(self._api_url, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = _extract_error_message(exc.response) or str(exc)
            LOGGER.warning(
                "llm_request_failed",
                extra={"section": section.index, "status_code": status_code, "error": message},
            )
            raise GenerationBackendError(f"HTTP {status_code}: {message}", status_code=status_code) from exc
        except httpx.HTTPError as exc:
            LOGGER.warning("llm_request_failed", extra={"section": section.index, "error": str(exc)})
            raise GenerationBackendError(f"{exc.__class__.__name__}: {exc}") from exc

        text = _extract_text(response.json())
        duration_ms = int((time.perf_counter() - started_at) * 1000)
        if not text:
            raise EmptyCompletionError("Generation backend returned empty content")
        LOGGER.info(
            "llm_request_succeeded",
            extra={
                "section": section.index,
                "model": payload.get("model"),
                "max_tokens": payload.get("max_tokens"),
                "duration_ms": duration_ms,
            },
        )
        return text


class EchoGenerator:
    """Offline generator producing deterministic placeholder text."""

    def __call__(self, section: SectionSpec, context: SectionContext) -> str:
        return f"Offline draft for {context.subject}. Scope: {section.directive}."


def _extract_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    if isinstance(content, list):
        content = "".join(
            str(part.get("text", "")) for part in content if isinstance(part, dict)
        )
    return str(content or "").strip()


def _extract_error_message(response: Optional[httpx.Response]) -> str:
    if response is None:
        return ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error_block = payload.get("error")
        if isinstance(error_block, dict) and error_block.get("message"):
            return str(error_block["message"])
    return (response.text or "").strip()[:200]


__all__ = [
    "ChatCompletionsGenerator",
    "EchoGenerator",
    "EmptyCompletionError",
    "GenerationBackendError",
    "build_messages",
]
