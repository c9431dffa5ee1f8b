"""Asynchronous post-processing of compiled placeholders."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
import logging
from typing import TYPE_CHECKING

from markdd.core.diagnostics import DiagnosticEmitter, ensure_emitter
from markdd.core.exceptions import FailureKind, classify_failure, exception_hint
from markdd.core.sanitize import sanitize_fragment

from .compiler import PlaceholderCompiler
from .markup import error_block, notation_label, rendered_block
from .models import BlockFailure, PlaceholderContainer, PlaceholderStatus, RenderPass


if TYPE_CHECKING:
    from markdd.adapters import AdapterRegistry


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class PostProcessor:
    """Resolve every placeholder independently and splice in the results.

    Failures are contained per placeholder: an adapter that raises or returns
    a :class:`BlockFailure` yields an error block, never an exception.
    """

    def __init__(
        self, adapters: AdapterRegistry, *, emitter: DiagnosticEmitter | None = None
    ) -> None:
        self.adapters = adapters
        self.emitter = ensure_emitter(emitter)

    async def process(
        self,
        markup: str,
        placeholders: Sequence[PlaceholderContainer],
        *,
        is_current: Callable[[], bool] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Return ``markup`` with every started placeholder substituted."""
        if not placeholders:
            return markup

        current = markup

        async def settle(placeholder: PlaceholderContainer) -> None:
            nonlocal current
            replacement = await self._settle(placeholder, is_current)
            if replacement is None:
                return
            current = current.replace(placeholder.marker, replacement, 1)
            if on_progress is not None and (is_current is None or is_current()):
                on_progress(current)

        tasks = [asyncio.create_task(settle(placeholder)) for placeholder in placeholders]
        await asyncio.gather(*tasks)
        return current

    async def _settle(
        self,
        placeholder: PlaceholderContainer,
        is_current: Callable[[], bool] | None,
    ) -> str | None:
        if is_current is not None and not is_current():
            logger.debug("Skipping placeholder %s of a superseded pass", placeholder.id)
            return None

        placeholder.advance(PlaceholderStatus.RENDERING)
        result = await self._render(placeholder)

        if isinstance(result, BlockFailure):
            placeholder.advance(PlaceholderStatus.ERROR)
            placeholder.result = result
            logger.info(
                "%s block %s failed: %s", placeholder.notation, placeholder.id, result.message
            )
            self.emitter.event(
                "placeholder_failed",
                {
                    "id": placeholder.id,
                    "notation": placeholder.notation,
                    "message": result.message,
                    "kind": result.kind.value,
                },
            )
            return error_block(placeholder.notation, result)

        content = sanitize_fragment(result)
        placeholder.advance(PlaceholderStatus.RENDERED)
        placeholder.result = content
        self.emitter.event(
            "placeholder_rendered", {"id": placeholder.id, "notation": placeholder.notation}
        )
        return rendered_block(placeholder.notation, content)

    async def _render(self, placeholder: PlaceholderContainer) -> str | BlockFailure:
        try:
            source = placeholder.payload
        except (UnicodeDecodeError, ValueError) as exc:
            return BlockFailure(
                f"undecodable payload: {exc}", placeholder.encoded_payload, FailureKind.CONTENT
            )

        adapter = self.adapters.get(placeholder.notation)
        if adapter is None:
            return BlockFailure(
                f"no renderer for {notation_label(placeholder.notation)}",
                source,
                FailureKind.ACQUISITION,
            )

        result: str | BlockFailure
        for attempt in range(2):
            try:
                result = await adapter.render(source, variant=placeholder.variant)
            except Exception as exc:  # noqa: BLE001 - failures stay inside the block
                logger.debug("Adapter for %s raised", placeholder.notation, exc_info=exc)
                result = BlockFailure(
                    exception_hint(exc) or type(exc).__name__,
                    source,
                    classify_failure(exc),
                )
            retryable = isinstance(result, BlockFailure) and result.kind is FailureKind.API_SHAPE
            if retryable and attempt == 0:
                logger.debug("Retrying %s after an API shape failure", placeholder.id)
                continue
            break
        return result


class RenderSession:
    """Sequence of render passes over successive document snapshots.

    Only the most recent pass may update :attr:`markup`. Starting a pass
    marks the previous unfinished one as superseded; its remaining
    placeholders are skipped and late results are discarded.
    """

    def __init__(
        self,
        compiler: PlaceholderCompiler,
        post_processor: PostProcessor,
        *,
        emitter: DiagnosticEmitter | None = None,
        on_update: ProgressCallback | None = None,
    ) -> None:
        self.compiler = compiler
        self.post_processor = post_processor
        self.emitter = ensure_emitter(emitter)
        self.on_update = on_update
        self.markup = ""
        self._counter = 0
        self._latest: RenderPass | None = None

    @property
    def latest(self) -> RenderPass | None:
        return self._latest

    def is_current(self, render_pass: RenderPass) -> bool:
        return render_pass is self._latest

    def _apply(self, render_pass: RenderPass, markup: str) -> None:
        if not self.is_current(render_pass):
            return
        self.markup = markup
        if self.on_update is not None:
            self.on_update(markup)

    def _supersede(self, previous: RenderPass | None, successor: int) -> None:
        if previous is None or previous.completed or previous.superseded:
            return
        previous.superseded = True
        logger.debug("Render pass %d superseded by %d", previous.id, successor)
        self.emitter.event("pass_superseded", {"id": previous.id, "successor": successor})

    async def process(self, text: str) -> RenderPass:
        """Compile and post-process ``text`` as a new pass."""
        self._counter += 1
        render_pass = RenderPass(id=self._counter, text=text)
        self._supersede(self._latest, render_pass.id)
        self._latest = render_pass

        compiled = self.compiler.compile(text)
        render_pass.markup = compiled.markup
        render_pass.placeholders = compiled.placeholders
        render_pass.front_matter = compiled.front_matter
        self._apply(render_pass, compiled.markup)

        output = await self.post_processor.process(
            compiled.markup,
            compiled.placeholders,
            is_current=lambda: self.is_current(render_pass),
            on_progress=lambda markup: self._apply(render_pass, markup),
        )
        render_pass.output = output
        render_pass.completed = True
        if self.is_current(render_pass):
            if output != self.markup:
                self._apply(render_pass, output)
        else:
            render_pass.superseded = True
        return render_pass


__all__ = ["PostProcessor", "ProgressCallback", "RenderSession"]
