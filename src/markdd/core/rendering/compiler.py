"""Synchronous compile phase turning Markdown into placeholder-bearing HTML."""

from __future__ import annotations

from itertools import count
import logging
from typing import Any

import markdown
import yaml

from markdd.core.encoding import encode_payload
from markdd.core.exceptions import ContentError
from markdd.core.sanitize import sanitize_fragment
from markdd.extensions import ContainerExtension, DeferredMathExtension, deferred_custom_fences
from markdd.extensions.deferred_math import InlineRenderer

from .markup import placeholder_marker
from .models import CompiledDocument, PlaceholderContainer


logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS: tuple[str, ...] = (
    "pymdownx.highlight",
    "pymdownx.superfences",
    "abbr",
    "admonition",
    "attr_list",
    "def_list",
    "footnotes",
    "pymdownx.caret",
    "pymdownx.details",
    "pymdownx.keys",
    "pymdownx.mark",
    "pymdownx.tasklist",
    "pymdownx.tilde",
    "sane_lists",
    "tables",
    "toc",
)

DEFAULT_EXTENSION_CONFIGS: dict[str, dict[str, Any]] = {
    "pymdownx.highlight": {
        "css_class": "highlight",
        "guess_lang": False,
        "pygments_lang_class": True,
    },
    "pymdownx.keys": {
        "camel_case": True,
    },
    "pymdownx.tasklist": {
        "clickable_checkbox": False,
    },
    "toc": {
        "marker": "[TOC]",
        "toc_class": "table-of-contents",
    },
}


def split_front_matter(source: str) -> tuple[dict[str, Any], str]:
    """Split a leading YAML front matter block from ``source``."""
    candidate = source.lstrip("\ufeff")
    prefix_len = len(source) - len(candidate)
    lines = candidate.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, source

    front_matter_lines: list[str] = []
    closing_index: int | None = None
    for idx, line in enumerate(lines[1:], start=1):
        if line.strip() in {"---", "..."}:
            closing_index = idx
            break
        front_matter_lines.append(line)

    if closing_index is None:
        return {}, source

    try:
        metadata = yaml.safe_load("\n".join(front_matter_lines)) or {}
    except yaml.YAMLError:
        return {}, source
    if not isinstance(metadata, dict):
        return {}, source

    body = "\n".join(lines[closing_index + 1 :])
    if source.endswith("\n"):
        body += "\n"
    return metadata, source[:prefix_len] + body


class PlaceholderCompiler:
    """Compile document text in a single Python-Markdown pass.

    Notation fences become :class:`PlaceholderContainer` records whose marker
    HTML is embedded verbatim in the output. Identifiers restart at ``ph-1``
    on every call, so they are unique within one compiled document. The rest
    of the markup is sanitized before it is returned.
    """

    def __init__(
        self,
        *,
        inline_renderer: InlineRenderer | None = None,
        inline_math: bool = True,
        highlight: bool = True,
    ) -> None:
        self.inline_renderer = inline_renderer
        self.inline_math = inline_math
        self.highlight = highlight

    def _build_markdown(self, placeholders: list[PlaceholderContainer]) -> markdown.Markdown:
        counter = count(1)

        def record(notation: str, variant: str | None, body: str) -> str:
            identifier = f"ph-{next(counter)}"
            marker = placeholder_marker(identifier, notation, variant, body)
            placeholders.append(
                PlaceholderContainer(
                    id=identifier,
                    notation=notation,
                    variant=variant,
                    encoded_payload=encode_payload(body),
                    marker=marker,
                )
            )
            return marker

        extensions: list[Any] = [
            *MARKDOWN_EXTENSIONS,
            ContainerExtension(),
            DeferredMathExtension(record, self.inline_renderer, inline=self.inline_math),
        ]
        extension_configs: dict[str, dict[str, Any]] = {
            **DEFAULT_EXTENSION_CONFIGS,
            "pymdownx.highlight": {
                **DEFAULT_EXTENSION_CONFIGS["pymdownx.highlight"],
                "use_pygments": self.highlight,
            },
            "pymdownx.superfences": {"custom_fences": deferred_custom_fences(record)},
        }
        return markdown.Markdown(extensions=extensions, extension_configs=extension_configs)

    def compile(self, text: str) -> CompiledDocument:
        """Return the sanitized HTML and placeholders for ``text``."""
        front_matter, body = split_front_matter(text)
        placeholders: list[PlaceholderContainer] = []
        md = self._build_markdown(placeholders)
        try:
            markup = md.convert(body)
        except Exception as exc:  # pragma: no cover - library-controlled
            raise ContentError(f"Failed to convert Markdown source: {exc}") from exc

        # SuperFences may format a fence it later discards.
        placeholders = [entry for entry in placeholders if entry.marker in markup]
        markup = _sanitize_around_markers(markup, placeholders)
        logger.debug("Compiled document with %d placeholder(s)", len(placeholders))
        return CompiledDocument(markup=markup, placeholders=placeholders, front_matter=front_matter)


def _sanitize_around_markers(markup: str, placeholders: list[PlaceholderContainer]) -> str:
    tokens = {f"\x02{entry.id}\x03": entry.marker for entry in placeholders}
    for token, marker in tokens.items():
        markup = markup.replace(marker, token, 1)
    markup = sanitize_fragment(markup)
    for token, marker in tokens.items():
        markup = markup.replace(token, marker, 1)
    return markup


__all__ = ["MARKDOWN_EXTENSIONS", "PlaceholderCompiler", "split_front_matter"]
