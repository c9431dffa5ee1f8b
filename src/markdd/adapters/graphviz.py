"""Graphviz graphs rendered with the graphviz package or Kroki."""

from __future__ import annotations

import asyncio
from typing import Any

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import GRAPHVIZ

from .base import NotationAdapter, RenderStep, kroki_step


LAYOUT_ENGINES = frozenset({"dot", "neato", "fdp", "sfdp", "twopi", "circo"})


def layout_engine(variant: str | None) -> str:
    return variant if variant in LAYOUT_ENGINES else "dot"


class GraphvizAdapter(NotationAdapter):
    notation = "graphviz"

    def prepare(self, payload: str, variant: str | None) -> str:
        if not payload.strip():
            raise ContentError("empty Graphviz graph")
        return payload

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [
            RenderStep("Graphviz", self._render_local, engine=GRAPHVIZ),
            kroki_step(
                "graphviz",
                options=lambda selected: {"layout": layout_engine(selected)},
                timeout=self.request_timeout,
            ),
        ]

    async def _render_local(self, module: Any, source: str, variant: str | None) -> str:
        def pipe() -> str:
            graph = module.Source(source, engine=layout_engine(variant))
            return graph.pipe(format="svg", encoding="utf-8")

        return await asyncio.to_thread(pipe)


__all__ = ["GraphvizAdapter", "LAYOUT_ENGINES", "layout_engine"]
