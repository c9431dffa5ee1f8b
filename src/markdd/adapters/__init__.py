"""Adapter registry mapping notations to their renderers."""

from __future__ import annotations

from markdd.core.config import PreviewConfig
from markdd.core.diagnostics import DiagnosticEmitter
from markdd.core.libraries.resolver import LibraryResolver

from .base import AdapterState, NotationAdapter, RenderAttempt, RenderCache, RenderStep
from .charts import ChartAdapter
from .flow import FlowchartAdapter
from .graphviz import GraphvizAdapter
from .host import HostRenderService, HostRequest, HostResponse, LocalTexService
from .math import MathAdapter, inline_math_renderer
from .mindmap import MindmapAdapter
from .music import MusicAdapter
from .tikz import TikzAdapter
from .timing import TimingAdapter
from .uml import UmlAdapter


class AdapterRegistry:
    """Registry storing one adapter per notation."""

    def __init__(self) -> None:
        self._adapters: dict[str, NotationAdapter] = {}

    def register(self, notation: str, adapter: NotationAdapter) -> None:
        """Register an adapter under a notation name."""
        self._adapters[notation] = adapter

    def get(self, notation: str) -> NotationAdapter | None:
        return self._adapters.get(notation)

    def is_registered(self, notation: str) -> bool:
        """Return True when an adapter handles the given notation."""
        return notation in self._adapters

    @property
    def notations(self) -> list[str]:
        return list(self._adapters)


def build_adapters(
    resolver: LibraryResolver,
    *,
    config: PreviewConfig | None = None,
    cache: RenderCache | None = None,
    emitter: DiagnosticEmitter | None = None,
    host: HostRenderService | None = None,
) -> AdapterRegistry:
    """Return a registry populated with the built-in adapters."""
    config = config or PreviewConfig()
    registry = AdapterRegistry()
    options = {"config": config, "cache": cache, "emitter": emitter}
    for adapter_cls in (
        MathAdapter,
        FlowchartAdapter,
        GraphvizAdapter,
        MindmapAdapter,
        UmlAdapter,
        ChartAdapter,
        MusicAdapter,
        TimingAdapter,
    ):
        registry.register(adapter_cls.notation, adapter_cls(resolver, **options))
    registry.register(TikzAdapter.notation, TikzAdapter(resolver, host=host, **options))
    return registry


__all__ = [
    "AdapterRegistry",
    "AdapterState",
    "ChartAdapter",
    "FlowchartAdapter",
    "GraphvizAdapter",
    "HostRenderService",
    "HostRequest",
    "HostResponse",
    "LocalTexService",
    "MathAdapter",
    "MindmapAdapter",
    "MusicAdapter",
    "NotationAdapter",
    "RenderAttempt",
    "RenderCache",
    "RenderStep",
    "TikzAdapter",
    "TimingAdapter",
    "UmlAdapter",
    "build_adapters",
    "inline_math_renderer",
]
