"""Packaged prompt templates for per-section generation calls."""
from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Any, Final

_TEMPLATE_PACKAGE: Final[str] = __name__


@lru_cache(maxsize=16)
def load_template(name: str) -> str:
    """Return the contents of the template identified by ``name``.

    Raises
    ------
    FileNotFoundError
        If the requested template does not exist.
    """

    with resources.files(_TEMPLATE_PACKAGE).joinpath(name).open("r", encoding="utf-8") as stream:
        return stream.read()


def render_template(name: str, **values: Any) -> str:
    """Fill ``{placeholders}`` in a template; unknown names raise ``KeyError``."""

    return load_template(name).format(**values).strip()
