"""HTML fragments produced around deferred blocks."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from markdd.core.encoding import encode_payload

from .models import BlockFailure


@dataclass(frozen=True, slots=True)
class FenceInfo:
    notation: str
    variant: str


NOTATION_LABELS: dict[str, str] = {
    "math": "math",
    "flowchart": "diagram",
    "graphviz": "graph",
    "tikz": "TikZ diagram",
    "mindmap": "mind map",
    "uml": "PlantUML diagram",
    "chart": "chart",
    "music": "music notation",
    "timing": "timing diagram",
}

NOTATION_FENCES: dict[str, FenceInfo] = {
    "math": FenceInfo("math", "display"),
    "mermaid": FenceInfo("flowchart", "mermaid"),
    "flowchart": FenceInfo("flowchart", "flowchart"),
    "flow": FenceInfo("flowchart", "flowchart"),
    "sequence": FenceInfo("flowchart", "sequence"),
    "class": FenceInfo("flowchart", "class"),
    "dot": FenceInfo("graphviz", "dot"),
    "graphviz": FenceInfo("graphviz", "dot"),
    "neato": FenceInfo("graphviz", "neato"),
    "fdp": FenceInfo("graphviz", "fdp"),
    "sfdp": FenceInfo("graphviz", "sfdp"),
    "twopi": FenceInfo("graphviz", "twopi"),
    "circo": FenceInfo("graphviz", "circo"),
    "tikz": FenceInfo("tikz", "tikz"),
    "circuitikz": FenceInfo("tikz", "circuitikz"),
    "markmap": FenceInfo("mindmap", "markmap"),
    "mindmap": FenceInfo("mindmap", "markmap"),
    "kityminder": FenceInfo("mindmap", "kityminder"),
    "plantuml": FenceInfo("uml", "plantuml"),
    "puml": FenceInfo("uml", "plantuml"),
    "uml": FenceInfo("uml", "plantuml"),
    "vega": FenceInfo("chart", "vega"),
    "vega-lite": FenceInfo("chart", "vega-lite"),
    "vegalite": FenceInfo("chart", "vega-lite"),
    "abc": FenceInfo("music", "abc"),
    "wavedrom": FenceInfo("timing", "wavedrom"),
}


def fence_info(language: str) -> FenceInfo | None:
    """Return the notation registered for a fence language, if any."""
    return NOTATION_FENCES.get(language.strip().lower())


def notation_label(notation: str) -> str:
    return NOTATION_LABELS.get(notation, notation)


def placeholder_marker(identifier: str, notation: str, variant: str | None, body: str) -> str:
    """Build the container emitted in place of a deferred block."""
    variant_attr = escape(variant or "", quote=True)
    notation_attr = escape(notation, quote=True)
    label = escape(notation_label(notation), quote=False)
    return (
        f'<div class="deferred-block deferred-{notation_attr}" id="{identifier}" '
        f'data-placeholder-id="{identifier}" data-notation="{notation_attr}" '
        f'data-variant="{variant_attr}" data-payload="{encode_payload(body)}">'
        f'<div class="deferred-loading">Loading {label}…</div>'
        "</div>"
    )


def rendered_block(notation: str, content: str) -> str:
    notation_attr = escape(notation, quote=True)
    return (
        f'<div class="deferred-rendered deferred-{notation_attr}" '
        f'data-notation="{notation_attr}">{content}</div>'
    )


def error_block(notation: str, failure: BlockFailure) -> str:
    """Build a static error block keeping the original source visible."""
    notation_attr = escape(notation, quote=True)
    label = failure.label or notation_label(notation)
    title = escape(label[:1].upper() + label[1:], quote=False)
    message = escape(failure.message, quote=False)
    source = escape(failure.source, quote=False)
    return (
        f'<div class="deferred-error" data-notation="{notation_attr}" '
        f'data-failure="{failure.kind.value}">'
        f'<p class="deferred-error-message"><strong>{title} error:</strong> {message}</p>'
        '<details class="deferred-error-source"><summary>Source</summary>'
        f"<pre><code>{source}</code></pre></details>"
        "</div>"
    )


def inline_math_fallback(tex: str) -> str:
    return f'<span class="math-inline">{escape(tex, quote=False)}</span>'


__all__ = [
    "NOTATION_FENCES",
    "NOTATION_LABELS",
    "FenceInfo",
    "error_block",
    "fence_info",
    "inline_math_fallback",
    "notation_label",
    "placeholder_marker",
    "rendered_block",
]
