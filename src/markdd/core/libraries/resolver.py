"""Asynchronous acquisition of rendering engines from ranked sources."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Mapping
import logging
from typing import Any

from markdd.core.config import ResolutionConfig
from markdd.core.diagnostics import DiagnosticEmitter, ensure_emitter
from markdd.core.exceptions import exception_hint
from markdd.core.user_dir import user_paths

from .capabilities import ensure_capabilities
from .descriptors import (
    EngineHandle,
    LibraryDescriptor,
    LibrarySource,
    ResolutionState,
    ResolutionStatus,
    ResolutionSummary,
    StandInFactory,
    UnavailableEngine,
)
from .loaders import LoaderContext, LoaderRegistry, default_loader_name, loaders as default_loaders


logger = logging.getLogger(__name__)

Handle = EngineHandle | UnavailableEngine


def _check_requirement_cycles(descriptors: Mapping[str, LibraryDescriptor]) -> None:
    visiting: set[str] = set()
    done: set[str] = set()

    def visit(name: str, trail: tuple[str, ...]) -> None:
        if name in done or name not in descriptors:
            return
        if name in visiting:
            cycle = " -> ".join((*trail, name))
            raise ValueError(f"Circular engine requirements: {cycle}")
        visiting.add(name)
        for requirement in descriptors[name].requires:
            visit(requirement, (*trail, name))
        visiting.discard(name)
        done.add(name)

    for name in descriptors:
        visit(name, ())


class LibraryResolver:
    """Resolve engines on demand, caching handles for the resolver's lifetime.

    :meth:`resolve` never raises: a descriptor whose every source failed
    resolves to an :class:`UnavailableEngine` and stays failed until an
    explicit retry. Concurrent callers share the in-flight future so a source
    is never loaded twice for the same descriptor.
    """

    def __init__(
        self,
        descriptors: Iterable[LibraryDescriptor],
        *,
        config: ResolutionConfig | None = None,
        emitter: DiagnosticEmitter | None = None,
        loader_registry: LoaderRegistry | None = None,
    ) -> None:
        self.config = config or ResolutionConfig()
        self.emitter = ensure_emitter(emitter)
        self.loader_registry = loader_registry or default_loaders
        self._descriptors: dict[str, LibraryDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise ValueError(f"Duplicate engine descriptor '{descriptor.name}'")
            self._descriptors[descriptor.name] = descriptor
        _check_requirement_cycles(self._descriptors)
        self._states: dict[str, ResolutionState] = {}
        self._preconfigured: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        engines_dir = self.config.engines_dir
        if engines_dir is None:
            engines_dir = user_paths().engines_dir
        self.loader_context = LoaderContext(
            engines_dir=engines_dir,
            remote_timeout=self.config.remote_timeout,
        )

    # ------------------------------------------------------------------ queries

    @property
    def names(self) -> list[str]:
        return list(self._descriptors)

    def descriptor(self, name: str) -> LibraryDescriptor | None:
        return self._descriptors.get(name)

    def capabilities(self, name: str) -> Mapping[str, StandInFactory]:
        descriptor = self._descriptors.get(name)
        return descriptor.capabilities if descriptor is not None else {}

    def state(self, name: str) -> ResolutionState:
        """Return the bookkeeping record for ``name``."""
        state = self._states.get(name)
        if state is None:
            state = self._states[name] = ResolutionState(name=name)
        return state

    def is_resolved(self, name: str) -> bool:
        return self.state(name).status is ResolutionStatus.READY

    def peek(self, name: str) -> EngineHandle | None:
        """Return the cached handle without starting a resolution."""
        state = self._states.get(name)
        if state is None or state.status is not ResolutionStatus.READY:
            return None
        handle = state.handle
        return handle if isinstance(handle, EngineHandle) else None

    def ready_engines(self) -> Iterator[tuple[str, Any]]:
        for name, state in self._states.items():
            if state.status is ResolutionStatus.READY and state.handle is not None:
                yield name, state.handle.engine

    # --------------------------------------------------------------- resolution

    def resolve(self, name: str, *, retry: bool = False) -> asyncio.Future[Handle]:
        """Return a future settling with the engine handle for ``name``.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        state = self.state(name)
        if retry and state.status is ResolutionStatus.FAILED:
            logger.debug("Retrying resolution of '%s'", name)
            state.status = ResolutionStatus.UNRESOLVED
            state.in_flight = None

        if state.status in (ResolutionStatus.READY, ResolutionStatus.FAILED):
            future = state.in_flight
            if future is None or future.get_loop() is not loop:
                future = loop.create_future()
                future.set_result(state.handle)
                state.in_flight = future
            return future

        if (
            state.status is ResolutionStatus.RESOLVING
            and state.in_flight is not None
            and state.in_flight.get_loop() is loop
        ):
            return state.in_flight

        state.status = ResolutionStatus.RESOLVING
        state.attempts += 1
        pending: asyncio.Future[Handle] = loop.create_future()
        state.in_flight = pending
        task = loop.create_task(self._run(name, state, pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return pending

    async def retry(self, name: str) -> Handle:
        return await self.resolve(name, retry=True)

    async def resolve_all(
        self, names: Iterable[str] | None = None, *, retry: bool = False
    ) -> ResolutionSummary:
        """Resolve every descriptor (or ``names``) and summarise the outcome."""
        targets = list(names) if names is not None else self.names
        handles = await asyncio.gather(*(self.resolve(name, retry=retry) for name in targets))
        summary = ResolutionSummary()
        for name, handle in zip(targets, handles):
            if handle.available:
                summary.succeeded.append(name)
            else:
                summary.failed.append(name)
                summary.reasons[name] = handle.reason or "unavailable"
        return summary

    def handle_for_invocation(self, name: str) -> Handle:
        """Return the current handle with capabilities re-ensured."""
        state = self.state(name)
        handle = state.handle
        if state.status is not ResolutionStatus.READY or not isinstance(handle, EngineHandle):
            return UnavailableEngine(name, state.last_error or "not resolved")
        refreshed = ensure_capabilities(handle, self.capabilities(name))
        if refreshed is not handle:
            added = [entry for entry in refreshed.patched if entry not in handle.patched]
            logger.warning("Engine '%s' lost %s; installed stand-ins", name, ", ".join(added))
            self.emitter.event("capability_patched", {"name": name, "capabilities": added})
            state.handle = refreshed
            state.in_flight = None
        return refreshed

    # ---------------------------------------------------------------- internals

    async def _run(
        self, name: str, state: ResolutionState, future: asyncio.Future[Handle]
    ) -> None:
        try:
            handle = await self._acquire(name)
        except Exception as exc:  # noqa: BLE001 - resolution never raises
            logger.exception("Unexpected failure while resolving '%s'", name)
            handle = UnavailableEngine(name, exception_hint(exc) or type(exc).__name__)

        state.handle = handle
        if handle.available:
            state.status = ResolutionStatus.READY
            state.last_error = None
            self.emitter.event("library_resolved", {"name": name, "source": handle.origin})
        else:
            state.status = ResolutionStatus.FAILED
            state.last_error = handle.reason
            logger.warning("Engine '%s' unavailable: %s", name, handle.reason)
            self.emitter.event("library_failed", {"name": name, "reason": handle.reason})
        if not future.done():
            future.set_result(handle)

    async def _acquire(self, name: str) -> Handle:
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            return UnavailableEngine(name, "no descriptor registered")

        for requirement in descriptor.requires:
            dependency = await self.resolve(requirement)
            if not dependency.available:
                return UnavailableEngine(
                    name, f"required engine '{requirement}' is unavailable"
                )

        self._preconfigure(descriptor)

        errors: list[str] = []
        if descriptor.embedded_resolve is not None:
            try:
                candidate = descriptor.embedded_resolve()
            except Exception as exc:  # noqa: BLE001 - loader failures are contained
                logger.debug("Embedded resolve of '%s' failed: %s", name, exc)
                errors.append(f"embedded: {exception_hint(exc)}")
            else:
                if candidate is not None and self._is_ready(descriptor, candidate):
                    return self._ready(descriptor, candidate, None)

        for source in descriptor.ranked_sources():
            if source.kind.is_remote and not self.config.allow_remote:
                errors.append(f"{source.describe()}: remote sources disabled")
                continue
            try:
                candidate = await self._load(source)
            except Exception as exc:  # noqa: BLE001 - loader failures are contained
                reason = exception_hint(exc) or type(exc).__name__
                logger.debug("Source %s of '%s' failed: %s", source.describe(), name, reason)
                self.emitter.event(
                    "library_source_failed",
                    {"name": name, "source": source.describe(), "error": reason},
                )
                errors.append(f"{source.describe()}: {reason}")
                continue
            if candidate is None:
                errors.append(f"{source.describe()}: no engine produced")
                continue
            if await self._poll_ready(descriptor, candidate):
                return self._ready(descriptor, candidate, source)
            errors.append(
                f"{source.describe()}: not ready after {self.config.poll_attempts} checks"
            )

        reason = "; ".join(errors) if errors else "no sources declared"
        return UnavailableEngine(name, reason)

    def _preconfigure(self, descriptor: LibraryDescriptor) -> None:
        if descriptor.preconfigure is None or descriptor.name in self._preconfigured:
            return
        self._preconfigured.add(descriptor.name)
        try:
            descriptor.preconfigure()
        except Exception as exc:  # noqa: BLE001 - preconfiguration is advisory
            logger.warning("Pre-configuration of '%s' failed: %s", descriptor.name, exc)

    async def _load(self, source: LibrarySource) -> Any:
        loader = self.loader_registry.get(default_loader_name(source))
        return await asyncio.to_thread(loader, source, self.loader_context)

    @staticmethod
    def _is_ready(descriptor: LibraryDescriptor, candidate: Any) -> bool:
        try:
            return bool(descriptor.is_ready(candidate))
        except Exception:  # noqa: BLE001 - readiness checks must not raise
            return False

    async def _poll_ready(self, descriptor: LibraryDescriptor, candidate: Any) -> bool:
        attempts = self.config.poll_attempts
        for attempt in range(attempts):
            if self._is_ready(descriptor, candidate):
                return True
            if attempt + 1 < attempts:
                await asyncio.sleep(self.config.poll_interval)
        return False

    def _ready(
        self, descriptor: LibraryDescriptor, candidate: Any, source: LibrarySource | None
    ) -> EngineHandle:
        handle = EngineHandle(name=descriptor.name, engine=candidate, source=source)
        patched = ensure_capabilities(handle, descriptor.capabilities)
        if patched.patched:
            logger.warning(
                "Engine '%s' is missing %s; installed stand-ins",
                descriptor.name,
                ", ".join(patched.patched),
            )
            self.emitter.event(
                "capability_patched",
                {"name": descriptor.name, "capabilities": list(patched.patched)},
            )
        return patched


__all__ = ["LibraryResolver"]
