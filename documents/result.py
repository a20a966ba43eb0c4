"""Typed output of the section pipeline and its one-pass assembly."""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .catalog import DocumentType, canonical_section_id

FAILURE_MARKER = "GENERATION FAILED"
SECTION_SEPARATOR = "\n\n---\n\n"
GENERATION_METHOD = "section_based_api_calls"


class SectionOutcome(str, Enum):
    GENERATED = "generated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Section:
    index: int
    id: str
    title: str
    content: str
    outcome: SectionOutcome
    summary: str = ""
    error: Optional[str] = None

    @property
    def canonical_id(self) -> str:
        return canonical_section_id(self.index)

    @property
    def failed(self) -> bool:
        return self.outcome is SectionOutcome.FALLBACK

    def as_text(self) -> str:
        return f"{self.title}\n\n{self.content}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "id": self.id,
            "canonical_id": self.canonical_id,
            "title": self.title,
            "content": self.content,
            "outcome": self.outcome.value,
            "summary": self.summary,
            "error": self.error,
        }


@dataclass(frozen=True)
class DocumentMetadata:
    document_type: str
    sections_generated: int
    successful_generations: int
    failed_generations: int
    success_rate: str
    generation_method: str = GENERATION_METHOD
    missing_parameters: Tuple[str, ...] = ()
    breakdown: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentType": self.document_type,
            "sectionsGenerated": self.sections_generated,
            "successfulGenerations": self.successful_generations,
            "failedGenerations": self.failed_generations,
            "successRate": self.success_rate,
            "generationMethod": self.generation_method,
            "missingParameters": list(self.missing_parameters),
            "breakdown": {name: dict(counts) for name, counts in self.breakdown.items()} or None,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class DocumentResult:
    """A finished multi-section document; never mutated after assembly."""

    document_type: str
    sections: Tuple[Section, ...]
    sections_data: Mapping[str, str]
    convenience: Mapping[str, Any]
    metadata: DocumentMetadata

    def section(self, canonical_id: str) -> Optional[Section]:
        return next((item for item in self.sections if item.canonical_id == canonical_id), None)

    @property
    def failed_sections(self) -> Tuple[Section, ...]:
        return tuple(item for item in self.sections if item.failed)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "documentType": self.document_type,
            "sections": [item.to_dict() for item in self.sections],
            "sectionsData": dict(self.sections_data),
            "metadata": self.metadata.to_dict(),
        }
        for key, value in self.convenience.items():
            payload.setdefault(key, _plain(value))
        return payload


def success_rate(successful: int, total: int) -> str:
    """Percentage rounded half-up, e.g. ``2/3 -> "67%"``."""

    if total <= 0:
        return "0%"
    return f"{int(math.floor(successful * 100 / total + 0.5))}%"


def join_sections(sections: Sequence[Section]) -> str:
    return SECTION_SEPARATOR.join(item.as_text() for item in sections)


def assemble_result(
    document: DocumentType,
    sections: Sequence[Section],
    *,
    missing_parameters: Sequence[str] = (),
    duration_ms: Optional[int] = None,
    now_ms: Optional[int] = None,
) -> DocumentResult:
    ordered = tuple(sorted(sections, key=lambda item: item.index))
    total = len(ordered)
    successful = sum(1 for item in ordered if not item.failed)

    sections_data = MappingProxyType({item.canonical_id: item.content for item in ordered})
    convenience, breakdown = _layout_fields(document, ordered, now_ms=now_ms)

    metadata = DocumentMetadata(
        document_type=document.key,
        sections_generated=total,
        successful_generations=successful,
        failed_generations=total - successful,
        success_rate=success_rate(successful, total),
        missing_parameters=tuple(missing_parameters),
        breakdown=breakdown,
        duration_ms=duration_ms,
    )
    return DocumentResult(
        document_type=document.key,
        sections=ordered,
        sections_data=sections_data,
        convenience=MappingProxyType(convenience),
        metadata=metadata,
    )


def _layout_fields(
    document: DocumentType,
    sections: Tuple[Section, ...],
    *,
    now_ms: Optional[int],
) -> Tuple[Dict[str, Any], Dict[str, Dict[str, int]]]:
    layout = document.layout
    fields: Dict[str, Any] = {}
    breakdown: Dict[str, Dict[str, int]] = {}

    if layout.kind == "split":
        split_at = int(layout.split_at or 0)
        first, rest = sections[:split_at], sections[split_at:]
        first_name, rest_name = layout.names
        first_text = join_sections(first)
        rest_text = join_sections(rest)
        fields[first_name] = first_text
        fields[rest_name] = rest_text
        fields["document_content"] = f"{first_text}\n\n{rest_text}"
        labels = layout.labels or layout.names
        for label, part in zip(labels, (first, rest)):
            failed = sum(1 for item in part if item.failed)
            breakdown[label.lower()] = {"successful": len(part) - failed, "failed": failed}
        return fields, breakdown

    legacy = {
        f"section_{item.index}": MappingProxyType({"title": item.title, "content": item.content})
        for item in sections
    }
    fields.update(legacy)
    if layout.kind == "protocol":
        stamp = now_ms if now_ms is not None else int(time.time() * 1000)
        fields["protocol_id"] = f"prot-{stamp}"
        fields["protocol"] = join_sections(sections)
    else:
        fields["document_content"] = join_sections(sections)
    return fields, breakdown


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return dict(value)
    return value


__all__ = [
    "DocumentMetadata",
    "DocumentResult",
    "FAILURE_MARKER",
    "Section",
    "SectionOutcome",
    "assemble_result",
    "join_sections",
    "success_rate",
]
