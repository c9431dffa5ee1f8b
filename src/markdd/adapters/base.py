"""Primitives shared by notation adapters."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from hashlib import sha256
import logging
from typing import Any, ClassVar

from markdd.core.config import PreviewConfig
from markdd.core.diagnostics import DiagnosticEmitter, ensure_emitter
from markdd.core.exceptions import (
    ContentError,
    EngineUnavailableError,
    FailureKind,
    classify_failure,
    exception_hint,
)
from markdd.core.libraries.registry import KROKI
from markdd.core.libraries.resolver import LibraryResolver
from markdd.core.rendering.markup import notation_label
from markdd.core.rendering.models import BlockFailure


logger = logging.getLogger(__name__)


class AdapterState(str, Enum):
    IDLE = "idle"
    INVOKING_PRIMARY = "invoking-primary"
    INVOKING_FALLBACK = "invoking-fallback"
    SUCCESS = "success"
    FAILED = "failed"


_TRANSITIONS: dict[AdapterState, frozenset[AdapterState]] = {
    AdapterState.IDLE: frozenset(
        {AdapterState.INVOKING_PRIMARY, AdapterState.SUCCESS, AdapterState.FAILED}
    ),
    AdapterState.INVOKING_PRIMARY: frozenset(
        {AdapterState.SUCCESS, AdapterState.INVOKING_FALLBACK, AdapterState.FAILED}
    ),
    AdapterState.INVOKING_FALLBACK: frozenset(
        {AdapterState.SUCCESS, AdapterState.INVOKING_FALLBACK, AdapterState.FAILED}
    ),
    AdapterState.SUCCESS: frozenset(),
    AdapterState.FAILED: frozenset(),
}


EngineCall = Callable[[Any, str, str | None], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class RenderStep:
    """One engine in an adapter's chain.

    ``engine`` names the descriptor resolved before ``invoke`` runs; steps
    without an engine receive ``None``.
    """

    name: str
    invoke: EngineCall
    engine: str | None = None


@dataclass(slots=True)
class RenderAttempt:
    """Trace of a single :meth:`NotationAdapter.run` call."""

    notation: str
    states: list[AdapterState] = field(default_factory=lambda: [AdapterState.IDLE])
    errors: list[tuple[str, BaseException]] = field(default_factory=list)
    result: str | BlockFailure | None = None
    cached: bool = False

    @property
    def state(self) -> AdapterState:
        return self.states[-1]

    def advance(self, state: AdapterState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid adapter transition {self.state.value} -> {state.value}")
        self.states.append(state)


class RenderCache:
    """Small LRU cache of successfully rendered blocks."""

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(notation: str, variant: str | None, payload: str) -> str:
        digest = sha256()
        for chunk in (notation, variant or "", payload):
            digest.update(chunk.encode("utf-8"))
            digest.update(b"\x00")
        return digest.hexdigest()

    def get(self, key: str) -> str | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: str, value: str) -> None:
        if self.max_entries <= 0:
            return
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


def _describe(exc: BaseException) -> str:
    if isinstance(exc, EngineUnavailableError):
        return "not available"
    return exception_hint(exc) or type(exc).__name__


class NotationAdapter:
    """Base class running an engine chain with a fixed state machine.

    Subclasses declare :meth:`steps`; the first step is the primary engine,
    the others are fallbacks tried in order. :meth:`prepare` may reject a
    payload before any engine is touched, and :meth:`degrade` may supply a
    structural rendering once every step has failed.
    """

    notation: ClassVar[str] = ""

    def __init__(
        self,
        resolver: LibraryResolver,
        *,
        config: PreviewConfig | None = None,
        cache: RenderCache | None = None,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.resolver = resolver
        self.config = config or PreviewConfig()
        self.cache = cache
        self.emitter = ensure_emitter(emitter)

    @property
    def label(self) -> str:
        return notation_label(self.notation)

    @property
    def request_timeout(self) -> float:
        return self.config.services.request_timeout

    # ---------------------------------------------------------------- overrides

    def prepare(self, payload: str, variant: str | None) -> str:
        """Return the source handed to engines; raise ContentError to reject."""
        return payload

    def steps(self, variant: str | None) -> list[RenderStep]:
        raise NotImplementedError

    def degrade(self, source: str, variant: str | None) -> str | None:
        return None

    # ---------------------------------------------------------------- execution

    async def render(self, payload: str, *, variant: str | None = None) -> str | BlockFailure:
        attempt = await self.run(payload, variant=variant)
        return attempt.result  # type: ignore[return-value]

    async def run(self, payload: str, *, variant: str | None = None) -> RenderAttempt:
        """Render ``payload`` and return the full attempt trace."""
        attempt = RenderAttempt(self.notation)
        key = RenderCache.key(self.notation, variant, payload)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                attempt.cached = True
                attempt.result = cached
                attempt.advance(AdapterState.SUCCESS)
                return attempt

        try:
            source = self.prepare(payload, variant)
        except Exception as exc:  # noqa: BLE001 - content failures become block errors
            attempt.errors.append(("input", exc))
            attempt.advance(AdapterState.FAILED)
            attempt.result = BlockFailure(
                message=_describe(exc),
                source=payload,
                kind=classify_failure(exc),
                label=self.label,
            )
            return attempt

        for index, step in enumerate(self.steps(variant)):
            attempt.advance(
                AdapterState.INVOKING_PRIMARY if index == 0 else AdapterState.INVOKING_FALLBACK
            )
            try:
                content = await self._invoke(step, source, variant)
            except Exception as exc:  # noqa: BLE001 - try the next engine
                logger.debug("%s step '%s' failed: %s", self.notation, step.name, exc)
                attempt.errors.append((step.name, exc))
                continue
            if not content or not content.strip():
                attempt.errors.append((step.name, ContentError("no output produced")))
                continue
            attempt.advance(AdapterState.SUCCESS)
            attempt.result = content
            if self.cache is not None:
                self.cache.put(key, content)
            return attempt

        degraded = self.degrade(source, variant)
        if degraded is not None:
            if attempt.state is not AdapterState.IDLE:
                attempt.advance(AdapterState.INVOKING_FALLBACK)
            attempt.advance(AdapterState.SUCCESS)
            attempt.result = degraded
            return attempt

        attempt.advance(AdapterState.FAILED)
        attempt.result = self._failure(payload, attempt.errors)
        return attempt

    async def _invoke(self, step: RenderStep, source: str, variant: str | None) -> str:
        if step.engine is None:
            return await step.invoke(None, source, variant)
        handle = await self.resolver.resolve(step.engine)
        if not handle.available:
            raise EngineUnavailableError(step.engine, handle.reason)
        handle = self.resolver.handle_for_invocation(step.engine)
        if not handle.available:
            raise EngineUnavailableError(step.engine, handle.reason)
        return await step.invoke(handle.engine, source, variant)

    def _failure(self, payload: str, errors: list[tuple[str, BaseException]]) -> BlockFailure:
        if not errors:
            return BlockFailure(
                "no renderer configured", payload, FailureKind.ACQUISITION, self.label
            )
        parts: list[str] = []
        for name, exc in errors:
            if isinstance(exc, EngineUnavailableError):
                parts.append(f"{name} not available")
            else:
                parts.append(f"{name}: {_describe(exc)}")
        message = "; ".join(parts)
        kinds = [classify_failure(exc) for _, exc in errors]
        kind = next(
            (entry for entry in kinds if entry is not FailureKind.ACQUISITION),
            FailureKind.ACQUISITION,
        )
        return BlockFailure(message=message, source=payload, kind=kind, label=self.label)


def kroki_step(
    diagram_type: str,
    *,
    transform: Callable[[str, str | None], str] | None = None,
    options: Callable[[str | None], dict[str, str]] | None = None,
    timeout: float | None = None,
) -> RenderStep:
    """Return a step rendering through the Kroki service."""

    async def invoke(client: Any, source: str, variant: str | None) -> str:
        body = transform(source, variant) if transform is not None else source
        extra = options(variant) if options is not None else None
        return await asyncio.to_thread(
            client.render, diagram_type, body, "svg", options=extra, timeout=timeout
        )

    return RenderStep("Kroki", invoke, engine=KROKI)


__all__ = [
    "AdapterState",
    "NotationAdapter",
    "RenderAttempt",
    "RenderCache",
    "RenderStep",
    "kroki_step",
]
