"""Sequential section-by-section document generation with local failure recovery."""
from __future__ import annotations

import time
from typing import Any, Callable, List, Mapping, Optional, Protocol, Tuple

from config import SECTION_PACING_DELAY_S
from observability.logger import get_logger
from observability.metrics import get_registry

from .catalog import DocumentCatalog, DocumentType, SectionSpec
from .context import (
    GenerationContext,
    SectionContext,
    build_generation_context,
    summarize_failed,
    summarize_generated,
)
from .errors import SectionGenerationError
from .result import FAILURE_MARKER, DocumentResult, Section, SectionOutcome, assemble_result

LOGGER = get_logger("document_factory.documents.pipeline")
REGISTRY = get_registry()
SECTIONS_GENERATED = REGISTRY.counter("sections.generated_total")
SECTIONS_FAILED = REGISTRY.counter("sections.failed_total")
SECTION_DURATION = REGISTRY.summary("sections.duration_ms")

ProgressCallback = Callable[..., None]


class SectionGenerator(Protocol):
    """The generation call: text for one section, or an exception."""

    def __call__(self, section: SectionSpec, context: SectionContext) -> str:
        ...


class JobSubmitter(Protocol):
    def submit(
        self,
        job_type: str,
        payload: Any,
        fn: Callable[..., Any],
        *,
        owner: Optional[str] = None,
        trace_id: Optional[str] = None,
        with_progress: bool = False,
    ) -> str:
        ...


class SectionPipeline:
    """Build one document from its ordered section table.

    Sections are generated strictly one after another so each call can see
    short summaries of the earlier ones, with a fixed pause between calls.
    A failing section is replaced by a marked placeholder; the document as a
    whole only fails validation, before the first call.
    """

    def __init__(
        self,
        generator: SectionGenerator,
        catalog: Optional[DocumentCatalog] = None,
        *,
        pacing_delay_s: float = SECTION_PACING_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._generator = generator
        self._catalog = catalog if catalog is not None else DocumentCatalog.load_default()
        self._pacing_delay_s = max(0.0, float(pacing_delay_s))
        self._sleep = sleep

    @property
    def catalog(self) -> DocumentCatalog:
        return self._catalog

    def validate(self, doc_type: str, data: Mapping[str, Any]) -> GenerationContext:
        document = self._catalog.require(doc_type)
        context = build_generation_context(
            document,
            data,
            subject_parameter=self._catalog.subject_parameter,
        )
        if context.missing_parameters:
            LOGGER.info(
                "optional_parameters_missing",
                extra={"doc_type": doc_type, "missing": list(context.missing_parameters)},
            )
        return context

    def run(
        self,
        doc_type: str,
        data: Mapping[str, Any],
        progress: Optional[ProgressCallback] = None,
    ) -> DocumentResult:
        context = self.validate(doc_type, data)
        document = context.document
        total = document.section_count
        started = time.monotonic()
        LOGGER.info("document_started", extra={"doc_type": doc_type, "sections": total})

        sections: List[Section] = []
        summaries: List[Tuple[str, str]] = []
        for position, spec in enumerate(document.sections, start=1):
            section = self._generate_section(document, spec, context, tuple(summaries))
            sections.append(section)
            summaries.append((section.title, section.summary))
            if progress is not None:
                progress(position / total, message=f"Section {position}/{total}: {spec.title}")
            if position < total and self._pacing_delay_s:
                self._sleep(self._pacing_delay_s)

        duration_ms = int((time.monotonic() - started) * 1000)
        result = assemble_result(
            document,
            sections,
            missing_parameters=context.missing_parameters,
            duration_ms=duration_ms,
        )
        LOGGER.info(
            "document_completed",
            extra={
                "doc_type": doc_type,
                "sections": total,
                "failed": result.metadata.failed_generations,
                "success_rate": result.metadata.success_rate,
                "duration_ms": duration_ms,
            },
        )
        return result

    def job_function(self, doc_type: str) -> Callable[..., DocumentResult]:
        """Adapter for ``JobScheduler.submit(..., with_progress=True)``."""

        def run_document(payload: Mapping[str, Any], progress: Optional[ProgressCallback] = None) -> DocumentResult:
            return self.run(doc_type, payload, progress=progress)

        run_document.__name__ = f"generate_{doc_type}"
        return run_document

    def submit(
        self,
        scheduler: JobSubmitter,
        doc_type: str,
        data: Mapping[str, Any],
        *,
        owner: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> str:
        """Validate synchronously, then run the document as a background job."""

        self.validate(doc_type, data)
        return scheduler.submit(
            doc_type,
            dict(data),
            self.job_function(doc_type),
            owner=owner,
            trace_id=trace_id,
            with_progress=True,
        )

    def generate_smart(
        self,
        doc_type: str,
        data: Mapping[str, Any],
        fallback: Callable[[Mapping[str, Any]], Any],
    ) -> Any:
        """Section-based generation for registered types, ``fallback(data)`` otherwise."""

        if doc_type in self._catalog:
            LOGGER.info("document_route", extra={"doc_type": doc_type, "route": "sections"})
            return self.run(doc_type, data)
        LOGGER.info("document_route", extra={"doc_type": doc_type, "route": "single_call"})
        return fallback(data)

    def _generate_section(
        self,
        document: DocumentType,
        spec: SectionSpec,
        context: GenerationContext,
        previous: Tuple[Tuple[str, str], ...],
    ) -> Section:
        section_context = SectionContext(
            document=document,
            section=spec,
            subject=context.subject,
            formatted_parameters=context.formatted_parameters,
            profile=document.profile.for_section(),
            previous=previous,
        )
        started = time.perf_counter()
        try:
            text = self._call_generator(spec, section_context)
        except SectionGenerationError as exc:
            SECTIONS_FAILED.inc()
            LOGGER.warning(
                "section_failed",
                extra={
                    "doc_type": document.key,
                    "section": spec.index,
                    "title": spec.title,
                    "error": str(exc),
                    "error_type": exc.cause.__class__.__name__,
                },
            )
            return _fallback_section(spec, exc)

        elapsed_ms = (time.perf_counter() - started) * 1000
        SECTIONS_GENERATED.inc()
        SECTION_DURATION.observe(elapsed_ms)
        LOGGER.info(
            "section_generated",
            extra={
                "doc_type": document.key,
                "section": spec.index,
                "total": document.section_count,
                "title": spec.title,
                "duration_ms": int(elapsed_ms),
            },
        )
        return Section(
            index=spec.index,
            id=spec.id,
            title=spec.title,
            content=text,
            outcome=SectionOutcome.GENERATED,
            summary=summarize_generated(spec),
        )

    def _call_generator(self, spec: SectionSpec, section_context: SectionContext) -> str:
        try:
            raw = self._generator(spec, section_context)
        except Exception as exc:  # noqa: BLE001
            raise SectionGenerationError(spec.index, spec.title, exc) from exc
        text = str(raw or "").strip()
        if not text:
            raise SectionGenerationError(spec.index, spec.title, ValueError("empty response from generation backend"))
        return text


def _fallback_section(spec: SectionSpec, error: SectionGenerationError) -> Section:
    return Section(
        index=spec.index,
        id=spec.id,
        title=f"{spec.title} ({FAILURE_MARKER})",
        content=(
            f"Content generation failed for this section. Error: {error}. "
            "Please regenerate this section individually."
        ),
        outcome=SectionOutcome.FALLBACK,
        summary=summarize_failed(spec),
        error=str(error),
    )


__all__ = ["SectionGenerator", "SectionPipeline"]
