"""Errors raised by the section pipeline."""
from __future__ import annotations

from typing import Dict, Optional


class ValidationError(RuntimeError):
    """The request cannot be generated at all; raised before any backend call."""

    def __init__(self, message: str, *, doc_type: Optional[str] = None, details: Optional[Dict[str, object]] = None) -> None:
        super().__init__(message)
        self.doc_type = doc_type
        self.details = details or {}


class SectionGenerationError(RuntimeError):
    """One section's generation call failed. Recovered inside the pipeline."""

    def __init__(self, index: int, title: str, cause: BaseException) -> None:
        message = str(cause) or cause.__class__.__name__
        super().__init__(message)
        self.index = index
        self.title = title
        self.cause = cause


__all__ = ["SectionGenerationError", "ValidationError"]
