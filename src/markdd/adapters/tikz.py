"""TikZ and CircuiTikZ diagrams: local host service first, then Kroki."""

from __future__ import annotations

from typing import Any

from markdd.core.config import PreviewConfig
from markdd.core.diagnostics import DiagnosticEmitter
from markdd.core.exceptions import ContentError, EngineUnavailableError, HostServiceError
from markdd.core.libraries.registry import DVISVGM, LATEX
from markdd.core.libraries.resolver import LibraryResolver

from .base import NotationAdapter, RenderCache, RenderStep, kroki_step
from .host import HostRenderService, HostRequest, LocalTexService, tidy_source, wrap_document


class TikzAdapter(NotationAdapter):
    """Render TikZ locally when possible.

    An explicit ``host`` service replaces the local TeX toolchain; otherwise
    one is assembled from the resolved ``latex`` and ``dvisvgm`` engines.
    """

    notation = "tikz"

    def __init__(
        self,
        resolver: LibraryResolver,
        *,
        config: PreviewConfig | None = None,
        cache: RenderCache | None = None,
        emitter: DiagnosticEmitter | None = None,
        host: HostRenderService | None = None,
    ) -> None:
        super().__init__(resolver, config=config, cache=cache, emitter=emitter)
        self.host = host

    def prepare(self, payload: str, variant: str | None) -> str:
        source = tidy_source(payload)
        if not source.strip():
            raise ContentError("empty TikZ block")
        return source

    def steps(self, variant: str | None) -> list[RenderStep]:
        steps: list[RenderStep] = []
        host = self.host
        if host is not None:

            async def render_host(_engine: Any, source: str, variant: str | None) -> str:
                return await self._call(host, source, variant)

            steps.append(RenderStep("Host renderer", render_host))
        elif self.config.rendering.host_tikz:
            steps.append(RenderStep("Local TeX", self._render_local, engine=DVISVGM))
        steps.append(
            kroki_step("tikz", transform=wrap_document, timeout=self.request_timeout)
        )
        return steps

    async def _render_local(self, dvisvgm: Any, source: str, variant: str | None) -> str:
        latex = self.resolver.handle_for_invocation(LATEX)
        if not latex.available:
            raise EngineUnavailableError(LATEX, latex.reason)
        service = LocalTexService(latex.engine, dvisvgm, timeout=self.request_timeout)
        return await self._call(service, source, variant)

    @staticmethod
    async def _call(service: HostRenderService, source: str, variant: str | None) -> str:
        response = await service.render(HostRequest(source_text=source, variant=variant))
        if not response.success or not response.content:
            raise HostServiceError(response.error or "host renderer returned no content")
        return response.content


__all__ = ["TikzAdapter"]
