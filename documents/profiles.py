"""Sampling profiles for the generation backend, one per document category."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Tuple

from config import LLM_MODEL, SECTION_MAX_TOKENS


@dataclass(frozen=True)
class GenerationProfile:
    name: str
    model: str = LLM_MODEL
    max_tokens: int = 4096
    temperature: float = 0.3
    top_p: float = 0.9
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    stop: Tuple[str, ...] = field(default_factory=tuple)

    def for_section(self, cap: int = SECTION_MAX_TOKENS) -> "GenerationProfile":
        """Per-section calls get a smaller token budget than whole-document calls."""

        return replace(self, max_tokens=min(self.max_tokens, cap))

    def request_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
        }
        if self.stop:
            options["stop"] = list(self.stop)
        return options


PROFILES: Dict[str, GenerationProfile] = {
    "COMPREHENSIVE": GenerationProfile(
        name="COMPREHENSIVE",
        max_tokens=4096,
        temperature=0.3,
        presence_penalty=0.1,
        frequency_penalty=0.3,
        top_p=0.9,
    ),
    "PRECISE": GenerationProfile(
        name="PRECISE",
        max_tokens=4096,
        temperature=0.3,
        presence_penalty=0.05,
        frequency_penalty=0.1,
        top_p=0.8,
    ),
    "ANALYTICAL": GenerationProfile(
        name="ANALYTICAL",
        max_tokens=4096,
        temperature=0.2,
        frequency_penalty=0.05,
        top_p=0.85,
    ),
    # High frequency penalty keeps long regulatory sections from looping.
    "REGULATORY": GenerationProfile(
        name="REGULATORY",
        max_tokens=3500,
        temperature=0.2,
        presence_penalty=0.1,
        frequency_penalty=0.9,
        top_p=0.9,
        stop=("---END---", "\n\n\n\n", "STOP GENERATION", "SECTION END"),
    ),
}


def get_profile(name: str) -> GenerationProfile:
    try:
        return PROFILES[name]
    except KeyError:
        return PROFILES["COMPREHENSIVE"]


__all__ = ["GenerationProfile", "PROFILES", "get_profile"]
