"""SuperFences custom fences replacing notation blocks with deferred placeholders."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from markdd.core.rendering.markup import NOTATION_FENCES, FenceInfo


PlaceholderFactory = Callable[[str, str | None, str], str]


def _fence_formatter(info: FenceInfo, factory: PlaceholderFactory) -> Callable[..., str]:
    def format_fence(
        source: str,
        language: str,
        css_class: str,
        options: dict[str, Any],
        md: Any,
        **kwargs: Any,
    ) -> str:
        del language, css_class, options, md, kwargs
        return factory(info.notation, info.variant, source.strip("\n"))

    return format_fence


def deferred_custom_fences(factory: PlaceholderFactory) -> list[dict[str, Any]]:
    """Return ``pymdownx.superfences`` custom fences for every notation alias.

    ``factory(notation, variant, body)`` records a placeholder and returns the
    HTML marker that SuperFences stashes in place of the fence.
    """
    return [
        {
            "name": alias,
            "class": f"deferred-{info.notation}",
            "format": _fence_formatter(info, factory),
        }
        for alias, info in NOTATION_FENCES.items()
    ]


__all__ = ["PlaceholderFactory", "deferred_custom_fences"]
