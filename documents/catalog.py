"""Declarative registry of document types and their ordered section specs."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError as JSONSchemaValidationError

from config import SUBJECT_PARAMETER

from .errors import ValidationError
from .profiles import GenerationProfile, get_profile

CATALOG_RESOURCE = "catalog.json"

LAYOUT_KINDS = ("default", "split", "protocol")

_SECTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "pattern": "^[a-z0-9_]+$"},
        "title": {"type": "string", "minLength": 1},
        "directive": {"type": "string", "minLength": 1},
        "focus": {"type": "string"},
    },
    "required": ["id", "title", "directive"],
    "additionalProperties": False,
}

_LAYOUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "kind": {"enum": list(LAYOUT_KINDS)},
        "split_at": {"type": "integer", "minimum": 1},
        "names": {"type": "array", "items": {"type": "string"}, "minItems": 2, "maxItems": 2},
        "labels": {"type": "array", "items": {"type": "string"}, "minItems": 2, "maxItems": 2},
    },
    "required": ["kind"],
    "if": {"properties": {"kind": {"const": "split"}}},
    "then": {"required": ["kind", "split_at", "names"]},
    "additionalProperties": False,
}

CATALOG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "subject_parameter": {"type": "string", "minLength": 1},
        "document_types": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "label": {"type": "string"},
                    "profile": {"type": "string"},
                    "expertise": {"type": "string"},
                    "framework": {"type": "string"},
                    "required_parameters": {"type": "array", "items": {"type": "string"}},
                    "layout": _LAYOUT_SCHEMA,
                    "sections": {"type": "array", "items": _SECTION_SCHEMA, "minItems": 1},
                },
                "required": ["label", "sections"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["document_types"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class SectionSpec:
    """One entry of a document type's ordered section table."""

    index: int
    id: str
    title: str
    directive: str
    focus: Optional[str] = None

    @property
    def canonical_id(self) -> str:
        return canonical_section_id(self.index)


@dataclass(frozen=True)
class Layout:
    kind: str = "default"
    split_at: Optional[int] = None
    names: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentType:
    key: str
    label: str
    sections: Tuple[SectionSpec, ...]
    profile: GenerationProfile
    expertise: str = "Senior Regulatory Affairs Specialist"
    framework: str = "ICH guidelines"
    required_parameters: Tuple[str, ...] = ()
    layout: Layout = field(default_factory=Layout)

    @property
    def section_count(self) -> int:
        return len(self.sections)

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.key,
            "label": self.label,
            "profile": self.profile.name,
            "layout": self.layout.kind,
            "required_parameters": list(self.required_parameters),
            "sections": [{"index": spec.index, "id": spec.id, "title": spec.title} for spec in self.sections],
        }


def canonical_section_id(index: int) -> str:
    """Stable consumer-facing key for the section at 1-based ``index``."""

    return f"regulatory-section-{index}"


class DocumentCatalog:
    """Registered document types keyed by their tag."""

    def __init__(self, types: Sequence[DocumentType] = (), *, subject_parameter: str = SUBJECT_PARAMETER) -> None:
        self.subject_parameter = subject_parameter
        self._types: Dict[str, DocumentType] = {}
        for doc_type in types:
            self.register(doc_type)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "DocumentCatalog":
        try:
            Draft7Validator(CATALOG_SCHEMA).validate(raw)
        except JSONSchemaValidationError as exc:
            path = "/".join(str(part) for part in exc.absolute_path) or "$"
            raise ValueError(f"Invalid document catalog at {path}: {exc.message}") from exc

        catalog = cls(subject_parameter=str(raw.get("subject_parameter") or SUBJECT_PARAMETER))
        for key, entry in raw["document_types"].items():
            catalog.register(_build_document_type(key, entry))
        return catalog

    @classmethod
    def load_default(cls) -> "DocumentCatalog":
        resource = resources.files(__package__).joinpath(CATALOG_RESOURCE)
        with resource.open("r", encoding="utf-8") as stream:
            return cls.from_mapping(json.load(stream))

    def register(self, doc_type: DocumentType) -> None:
        layout = doc_type.layout
        if layout.kind == "split" and (layout.split_at or 0) >= doc_type.section_count:
            raise ValueError(f"Split point for {doc_type.key} must leave sections on both sides")
        self._types[doc_type.key] = doc_type

    def get(self, key: str) -> Optional[DocumentType]:
        return self._types.get(key)

    def require(self, key: str) -> DocumentType:
        doc_type = self._types.get(key)
        if doc_type is None:
            raise ValidationError(
                f"Unsupported document type: {key}",
                doc_type=key,
                details={"supported": sorted(self._types)},
            )
        return doc_type

    def keys(self) -> List[str]:
        return sorted(self._types)

    def __contains__(self, key: object) -> bool:
        return key in self._types

    def __iter__(self) -> Iterator[DocumentType]:
        return iter(self._types[key] for key in self.keys())

    def __len__(self) -> int:
        return len(self._types)


def _build_document_type(key: str, entry: Mapping[str, Any]) -> DocumentType:
    sections = tuple(
        SectionSpec(
            index=position,
            id=item["id"],
            title=item["title"],
            directive=item["directive"],
            focus=item.get("focus"),
        )
        for position, item in enumerate(entry["sections"], start=1)
    )
    layout_raw = entry.get("layout") or {}
    layout = Layout(
        kind=layout_raw.get("kind", "default"),
        split_at=layout_raw.get("split_at"),
        names=tuple(layout_raw.get("names") or ()),
        labels=tuple(layout_raw.get("labels") or ()),
    )
    return DocumentType(
        key=key,
        label=entry["label"],
        sections=sections,
        profile=get_profile(entry.get("profile", "COMPREHENSIVE")),
        expertise=entry.get("expertise") or "Senior Regulatory Affairs Specialist",
        framework=entry.get("framework") or "ICH guidelines",
        required_parameters=tuple(entry.get("required_parameters") or ()),
        layout=layout,
    )


__all__ = [
    "CATALOG_SCHEMA",
    "DocumentCatalog",
    "DocumentType",
    "Layout",
    "SectionSpec",
    "canonical_section_id",
]
