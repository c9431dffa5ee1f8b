"""Flow, sequence and class diagrams written in the Mermaid grammar."""

from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Any

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import MERMAID

from .base import NotationAdapter, RenderStep, kroki_step


DIAGRAM_HEADERS: dict[str, str] = {
    "flowchart": "flowchart TD",
    "sequence": "sequenceDiagram",
    "class": "classDiagram",
}

_MERMAID_KEYWORDS = (
    "flowchart",
    "graph",
    "sequenceDiagram",
    "classDiagram",
    "stateDiagram",
    "erDiagram",
    "gantt",
    "pie",
    "journey",
    "gitGraph",
    "mindmap",
    "timeline",
    "quadrantChart",
    "requirementDiagram",
    "C4Context",
    "sankey-beta",
    "xychart-beta",
    "block-beta",
)


def _first_statement(source: str) -> str:
    for line in source.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("%%"):
            continue
        return stripped
    return ""


def with_diagram_header(source: str, variant: str | None) -> str:
    """Prepend the diagram header implied by a fence alias when it is missing."""
    header = DIAGRAM_HEADERS.get(variant or "")
    if header is None:
        return source
    first = _first_statement(source)
    if first.startswith(_MERMAID_KEYWORDS) or first.startswith("---"):
        return source
    return f"{header}\n{source}"


class FlowchartAdapter(NotationAdapter):
    notation = "flowchart"

    def prepare(self, payload: str, variant: str | None) -> str:
        if not payload.strip():
            raise ContentError("empty Mermaid diagram")
        return with_diagram_header(payload, variant)

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [
            RenderStep("Mermaid CLI", self._run_cli, engine=MERMAID),
            kroki_step("mermaid", timeout=self.request_timeout),
        ]

    async def _run_cli(self, engine: Any, source: str, variant: str | None) -> str:
        with tempfile.TemporaryDirectory(prefix="markdd-mermaid-") as tmp:
            working_dir = Path(tmp)
            (working_dir / "diagram.mmd").write_text(source, encoding="utf-8")
            await engine.run(
                ["-i", "diagram.mmd", "-o", "diagram.svg", "-b", "transparent"],
                cwd=working_dir,
                timeout=self.request_timeout,
            )
            produced = working_dir / "diagram.svg"
            if not produced.exists():
                raise ContentError("Mermaid CLI did not produce an SVG file")
            return produced.read_text(encoding="utf-8")


__all__ = ["DIAGRAM_HEADERS", "FlowchartAdapter", "with_diagram_header"]
