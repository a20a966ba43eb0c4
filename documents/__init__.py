"""Section-based generation of long multi-section documents."""

from .catalog import DocumentCatalog, DocumentType, Layout, SectionSpec, canonical_section_id  # noqa: F401
from .context import GenerationContext, SectionContext, format_parameters  # noqa: F401
from .errors import SectionGenerationError, ValidationError  # noqa: F401
from .pipeline import SectionGenerator, SectionPipeline  # noqa: F401
from .profiles import GenerationProfile, get_profile  # noqa: F401
from .result import DocumentMetadata, DocumentResult, Section, SectionOutcome  # noqa: F401

__all__ = [
    "DocumentCatalog",
    "DocumentMetadata",
    "DocumentResult",
    "DocumentType",
    "GenerationContext",
    "GenerationProfile",
    "Layout",
    "Section",
    "SectionContext",
    "SectionGenerationError",
    "SectionGenerator",
    "SectionOutcome",
    "SectionPipeline",
    "SectionSpec",
    "ValidationError",
    "canonical_section_id",
    "format_parameters",
    "get_profile",
]
