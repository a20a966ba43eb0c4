# -*- coding: utf-8 -*-

import os


def _env_int(name: str, default: int) -> int:
    value = str(os.getenv(name, "")).strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = str(os.getenv(name, "")).strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = str(os.getenv(name, "")).strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "off", "no"}


OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY", "")).strip()
OPENAI_API_URL = (
    str(os.getenv("OPENAI_API_URL", "")).strip() or "https://api.openai.com/v1/chat/completions"
)
# Individual calls are bounded by the transport; a whole document run is not.
OPENAI_TIMEOUT_S = max(1.0, _env_float("OPENAI_TIMEOUT_S", 120.0))
OPENAI_RPS = max(1, _env_int("OPENAI_RPS", 2))
OPENAI_RPM = max(OPENAI_RPS, _env_int("OPENAI_RPM", 60))
LLM_MODEL = str(os.getenv("LLM_MODEL", "gpt-4o")).strip() or "gpt-4o"

# Section pipeline
SECTION_MAX_TOKENS = max(16, _env_int("SECTION_MAX_TOKENS", 2000))
SECTION_PACING_DELAY_S = max(0.0, _env_float("SECTION_PACING_DELAY_S", 0.025))
SECTION_SUMMARY_MAX_CHARS = max(32, _env_int("SECTION_SUMMARY_MAX_CHARS", 160))
SUBJECT_PARAMETER = "disease_name"

# Background jobs
JOB_MAX_CONCURRENCY = max(1, _env_int("JOB_MAX_CONCURRENCY", 4))
JOB_POLL_INTERVAL_S = max(0.1, _env_float("JOB_POLL_INTERVAL_S", 2.0))
JOB_POLL_MAX_ATTEMPTS = max(1, _env_int("JOB_POLL_MAX_ATTEMPTS", 450))

USE_MOCK_LLM = _env_bool("USE_MOCK_LLM", False)
