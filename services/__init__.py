"""Service layer utilities."""

from .llm_client import (  # noqa: F401
    ChatCompletionsGenerator,
    EchoGenerator,
    EmptyCompletionError,
    GenerationBackendError,
)

__all__ = [
    "ChatCompletionsGenerator",
    "EchoGenerator",
    "EmptyCompletionError",
    "GenerationBackendError",
]
