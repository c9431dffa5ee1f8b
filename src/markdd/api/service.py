"""Preview facade used by editor hosts, the CLI and embedding integrations."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from html import escape
import logging
from typing import Any

from markdd.adapters import AdapterRegistry, RenderCache, build_adapters, inline_math_renderer
from markdd.adapters.host import HostRenderService
from markdd.core.config import PreviewConfig
from markdd.core.diagnostics import DiagnosticEmitter, ensure_emitter
from markdd.core.libraries.capabilities import CapabilityInterceptor, install_exception_interceptor
from markdd.core.libraries.descriptors import LibraryDescriptor, ResolutionSummary
from markdd.core.libraries.registry import MATH, default_descriptors
from markdd.core.libraries.resolver import LibraryResolver
from markdd.core.rendering.compiler import PlaceholderCompiler
from markdd.core.rendering.models import CompiledDocument, RenderPass
from markdd.core.rendering.orchestrator import PostProcessor, ProgressCallback, RenderSession


__all__ = ["PreviewService", "render", "standalone_html"]

logger = logging.getLogger(__name__)


class PreviewService:
    """Own the resolver, adapters and render session of one preview pane.

    The resolution cache lives as long as the service, so engines acquired
    for one pass are reused by every later pass.
    """

    def __init__(
        self,
        config: PreviewConfig | None = None,
        emitter: DiagnosticEmitter | None = None,
        *,
        descriptors: Iterable[LibraryDescriptor] | None = None,
        resolver: LibraryResolver | None = None,
        adapters: AdapterRegistry | None = None,
        host: HostRenderService | None = None,
        on_update: ProgressCallback | None = None,
    ) -> None:
        self.config = config or PreviewConfig()
        self.emitter = ensure_emitter(emitter)
        if resolver is None:
            resolver = LibraryResolver(
                descriptors if descriptors is not None else default_descriptors(self.config),
                config=self.config.resolution,
                emitter=self.emitter,
            )
        self.resolver = resolver
        self.cache = RenderCache(self.config.rendering.cache_entries)
        self.adapters = adapters or build_adapters(
            resolver, config=self.config, cache=self.cache, emitter=self.emitter, host=host
        )
        rendering = self.config.rendering
        self.compiler = PlaceholderCompiler(
            inline_renderer=inline_math_renderer(resolver),
            inline_math=rendering.inline_math,
            highlight=rendering.highlight,
        )
        self.session = RenderSession(
            self.compiler,
            PostProcessor(self.adapters, emitter=self.emitter),
            emitter=self.emitter,
            on_update=on_update,
        )
        self._interceptor: CapabilityInterceptor | None = None

    @property
    def markup(self) -> str:
        return self.session.markup

    def compile(self, text: str) -> CompiledDocument:
        """Run only the synchronous compile phase."""
        return self.compiler.compile(text)

    def _install_interceptor(self) -> None:
        loop = asyncio.get_running_loop()
        if self._interceptor is not None and loop.get_exception_handler() is self._interceptor:
            return
        self._interceptor = install_exception_interceptor(loop, self.resolver, emitter=self.emitter)

    async def render_pass(self, text: str) -> RenderPass:
        """Compile and post-process ``text`` as a new render pass."""
        self._install_interceptor()
        if self.config.rendering.inline_math and MATH in self.resolver.names:
            await self.resolver.resolve(MATH)
        return await self.session.process(text)

    async def process(self, text: str) -> str:
        """Return the final preview markup for ``text``.

        A caller whose pass was superseded by a newer one receives the newest
        markup rather than its own stale output.
        """
        render_pass = await self.render_pass(text)
        if render_pass.superseded:
            return self.session.markup
        return render_pass.output or ""

    async def resolve_all(self, retry: bool = False) -> ResolutionSummary:
        self._install_interceptor()
        summary = await self.resolver.resolve_all(retry=retry)
        logger.debug(
            "Resolved %d engine(s), %d unavailable", len(summary.succeeded), len(summary.failed)
        )
        return summary


def standalone_html(markup: str, *, title: str | None = None, lang: str = "en") -> str:
    """Wrap preview markup into a minimal HTML document."""
    heading = escape(title or "Preview", quote=False)
    return (
        "<!DOCTYPE html>\n"
        f'<html lang="{escape(lang, quote=True)}">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{heading}</title>\n"
        "</head>\n"
        f"<body>\n{markup}\n</body>\n"
        "</html>\n"
    )


def render(text: str, config: PreviewConfig | None = None, **options: Any) -> str:
    """Render ``text`` synchronously with a fresh :class:`PreviewService`."""
    service = PreviewService(config, **options)
    return asyncio.run(service.process(text))
