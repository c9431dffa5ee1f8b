"""Display and inline math rendered to MathML with latex2mathml."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import MATH
from markdd.core.libraries.resolver import LibraryResolver
from markdd.core.sanitize import sanitize_fragment
from markdd.extensions.deferred_math import InlineRenderer

from .base import NotationAdapter, RenderStep


logger = logging.getLogger(__name__)


class MathAdapter(NotationAdapter):
    notation = "math"

    def prepare(self, payload: str, variant: str | None) -> str:
        tex = payload.strip()
        if not tex:
            raise ContentError("empty math block")
        return tex

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [RenderStep("latex2mathml", self._convert, engine=MATH)]

    async def _convert(self, engine: Any, source: str, variant: str | None) -> str:
        return await asyncio.to_thread(engine.convert, source, display="block")


def inline_math_renderer(resolver: LibraryResolver) -> InlineRenderer:
    """Return a compile-time renderer using the math engine when it is ready."""

    def render(tex: str) -> str | None:
        handle = resolver.peek(MATH)
        if handle is None:
            return None
        try:
            markup = handle.engine.convert(tex.strip())
        except Exception as exc:  # noqa: BLE001 - fall back to escaped TeX
            logger.debug("Inline math '%s' could not be rendered: %s", tex, exc)
            return None
        return sanitize_fragment(markup) if markup else None

    return render


__all__ = ["MathAdapter", "inline_math_renderer"]
