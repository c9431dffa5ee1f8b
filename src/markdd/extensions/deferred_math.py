"""Arithmatex-based math handling for the placeholder compiler.

Display blocks (``$$...$$`` and ``\\[...\\]``) become deferred placeholders.
Inline math (``$...$`` and ``\\(...\\)``) is rendered synchronously in place,
falling back to escaped TeX when no renderer is available.
"""

from __future__ import annotations

from collections.abc import Callable
import re
from typing import Any
from xml.etree import ElementTree as etree

from markdown import Markdown
from pymdownx import util
from pymdownx.arithmatex import (
    RE_BRACKET_BLOCK,
    RE_BRACKET_INLINE,
    RE_DOLLAR_BLOCK,
    RE_SMART_DOLLAR_INLINE,
    ArithmatexExtension,
    BlockArithmatexProcessor,
    InlineArithmatexPattern,
)

from markdd.core.rendering.markup import inline_math_fallback

from .deferred_fences import PlaceholderFactory


InlineRenderer = Callable[[str], str | None]

INLINE_MATH_PATTERN = rf"(?:{RE_SMART_DOLLAR_INLINE}|{RE_BRACKET_INLINE})"
DISPLAY_MATH_PATTERN = rf"(?s)^(?:{RE_DOLLAR_BLOCK}|{RE_BRACKET_BLOCK})[ ]*$"


class _InlineMathPattern(InlineArithmatexPattern):
    """Emit rendered MathML, or escaped TeX, for inline math."""

    def __init__(self, md: Markdown, renderer: InlineRenderer | None) -> None:
        super().__init__(INLINE_MATH_PATTERN, {})
        self.md = md
        self._renderer = renderer

    def handleMatch(  # noqa: N802 - Markdown inline API requires camelCase
        self, m: re.Match[str], data: str
    ) -> tuple[Any, int, int]:
        groups = m.groups()
        if groups[0] or groups[3]:
            # Escaped backslashes ahead of a delimiter.
            return super().handleMatch(m, data)

        tex = groups[2] if groups[1] else groups[5]
        rendered = self._renderer(tex) if self._renderer is not None else None
        html = rendered if rendered else inline_math_fallback(tex)
        return self.md.htmlStash.store(html), m.start(0), m.end(0)


class _DisplayMathProcessor(BlockArithmatexProcessor):
    """Swap a display math block for a stashed placeholder marker."""

    def __init__(self, md: Markdown, factory: PlaceholderFactory) -> None:
        super().__init__(DISPLAY_MATH_PATTERN, {}, md)
        self._factory = factory

    def run(self, parent: etree.Element, blocks: list[str]) -> bool:
        blocks.pop(0)
        groups = self.match.groupdict()
        tex = (groups.get("math") or groups.get("math3") or "").strip()
        marker = self._factory("math", "display", tex)
        etree.SubElement(parent, "p").text = self.parser.md.htmlStash.store(marker)
        return True


class DeferredMathExtension(ArithmatexExtension):
    """Register the display and, optionally, the inline math processors."""

    def __init__(
        self,
        factory: PlaceholderFactory,
        renderer: InlineRenderer | None = None,
        *,
        inline: bool = True,
        **kwargs: Any,
    ) -> None:
        self._factory = factory
        self._renderer = renderer
        self._inline = inline
        super().__init__(**kwargs)

    def extendMarkdown(self, md: Markdown) -> None:  # noqa: N802
        md.registerExtension(self)
        util.escape_chars(md, ["$"])

        if self._inline:
            md.inlinePatterns.register(
                _InlineMathPattern(md, self._renderer), "markdd-inline-math", 189.9
            )
        md.parser.blockprocessors.register(
            _DisplayMathProcessor(md, self._factory), "markdd-display-math", 79.9
        )


__all__ = [
    "DISPLAY_MATH_PATTERN",
    "INLINE_MATH_PATTERN",
    "DeferredMathExtension",
    "InlineRenderer",
]
