"""Per-document and per-section context handed to the generation backend."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from config import SECTION_SUMMARY_MAX_CHARS

from .catalog import DocumentType, SectionSpec
from .errors import ValidationError
from .profiles import GenerationProfile

NO_PARAMETERS = "No additional parameters provided."
NO_VALID_PARAMETERS = "No valid parameters provided."
_WORD_START = re.compile(r"\b\w")


@dataclass(frozen=True)
class GenerationContext:
    """Subject parameters shared by every section of one document."""

    document: DocumentType
    subject: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    missing_parameters: Tuple[str, ...] = ()

    @property
    def formatted_parameters(self) -> str:
        return format_parameters(self.parameters)


@dataclass(frozen=True)
class SectionContext:
    """Everything one generation call needs: the shared context plus summaries so far."""

    document: DocumentType
    section: SectionSpec
    subject: str
    formatted_parameters: str
    profile: GenerationProfile
    previous: Tuple[Tuple[str, str], ...] = ()

    @property
    def total_sections(self) -> int:
        return self.document.section_count

    def previous_sections_text(self) -> str:
        if not self.previous:
            return ""
        lines = [f"{title}: {summary}" for title, summary in self.previous]
        return "PREVIOUS SECTIONS CONTEXT:\n" + "\n".join(lines)


def build_generation_context(
    document: DocumentType,
    data: Mapping[str, Any],
    *,
    subject_parameter: str,
) -> GenerationContext:
    if not isinstance(data, Mapping):
        raise ValidationError("Document input must be a mapping", doc_type=document.key)
    subject = str(data.get(subject_parameter) or "").strip()
    if not subject:
        raise ValidationError(
            f"Missing required parameter: {subject_parameter}",
            doc_type=document.key,
            details={"parameter": subject_parameter},
        )
    raw_parameters = data.get("additional_parameters") or {}
    if not isinstance(raw_parameters, Mapping):
        raw_parameters = {}
    parameters = dict(raw_parameters)
    missing = tuple(name for name in document.required_parameters if not _has_value(parameters.get(name)))
    return GenerationContext(
        document=document,
        subject=subject,
        parameters=parameters,
        missing_parameters=missing,
    )


def format_parameters(parameters: Optional[Mapping[str, Any]]) -> str:
    """Render parameters as ``- Title Case Key: value`` lines, skipping blanks."""

    if not parameters:
        return NO_PARAMETERS
    lines: List[str] = []
    for key, value in parameters.items():
        if not _has_value(value):
            continue
        label = _WORD_START.sub(lambda match: match.group(0).upper(), str(key).replace("_", " "))
        lines.append(f"- {label}: {str(value).strip()}")
    return "\n".join(lines) if lines else NO_VALID_PARAMETERS


def summarize_generated(spec: SectionSpec) -> str:
    """Compact stand-in for a generated section in later prompts."""

    first_clause = spec.directive.split(",")[0].strip().lower()
    summary = f"Section {spec.index} focuses on {first_clause}"
    return _truncate(summary, SECTION_SUMMARY_MAX_CHARS)


def summarize_failed(spec: SectionSpec) -> str:
    return f"Section {spec.index} generation failed"


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    return bool(str(value).strip())


def _truncate(text: str, limit: int) -> str:
    collapsed = re.sub(r"\s+", " ", text).strip()
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 1].rstrip() + "…"


__all__ = [
    "GenerationContext",
    "SectionContext",
    "build_generation_context",
    "format_parameters",
    "summarize_failed",
    "summarize_generated",
]

