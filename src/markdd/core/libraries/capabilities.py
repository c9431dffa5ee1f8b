"""Capability stand-ins for engines with an unstable API surface.

Some engines finish loading without exposing every function adapters call.
:func:`ensure_capabilities` derives a handle whose engine provides a harmless
stand-in for each missing name. It never replaces an existing implementation
and returns the very same handle when nothing is missing, so applying it
again after resolution and before every invocation is cheap and idempotent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import replace
import logging
from typing import TYPE_CHECKING, Any

from markdd.core.diagnostics import DiagnosticEmitter, record_event

from .descriptors import EngineHandle, StandInFactory, UnavailableEngine


if TYPE_CHECKING:
    from .resolver import LibraryResolver


logger = logging.getLogger(__name__)

_STANDIN_FLAG = "__markdd_standin__"


def _mark(function: Callable[..., Any], name: str) -> Callable[..., Any]:
    setattr(function, _STANDIN_FLAG, True)
    function.__name__ = name
    function.__qualname__ = f"standin.{name}"
    return function


def is_standin(function: Any) -> bool:
    """Return True when ``function`` was produced by a stand-in factory."""
    return bool(getattr(function, _STANDIN_FLAG, False))


def noop_standin(name: str) -> Callable[..., Any]:
    """Stand-in accepting anything and returning ``None``."""

    def standin(*_args: Any, **_kwargs: Any) -> None:
        return None

    return _mark(standin, name)


def passthrough_standin(name: str) -> Callable[..., Any]:
    """Stand-in returning a plain item unchanged, ``{}`` for anything callable.

    Callables are never invoked, so handing the stand-in to itself cannot
    recurse.
    """

    def standin(item: Any = None, *_args: Any, **_kwargs: Any) -> Any:
        if callable(item):
            return {}
        return item if item is not None else {}

    return _mark(standin, name)


class CapabilityShim:
    """Proxy exposing an engine plus stand-ins for the names it lacks."""

    __slots__ = ("_standins", "_target")

    def __init__(self, target: Any, standins: Mapping[str, Callable[..., Any]]) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_standins", dict(standins))

    @property
    def shim_target(self) -> Any:
        return self._target

    @property
    def standin_names(self) -> tuple[str, ...]:
        return tuple(self._standins)

    def __getattr__(self, name: str) -> Any:
        target = object.__getattribute__(self, "_target")
        try:
            return getattr(target, name)
        except AttributeError:
            standins = object.__getattribute__(self, "_standins")
            if name in standins:
                return standins[name]
            raise

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    def __repr__(self) -> str:
        return f"CapabilityShim({self._target!r}, standins={sorted(self._standins)})"


def unwrap_engine(engine: Any) -> Any:
    """Return the object behind any capability shim."""
    while isinstance(engine, CapabilityShim):
        engine = engine.shim_target
    return engine


def missing_capabilities(engine: Any, capabilities: Mapping[str, StandInFactory]) -> list[str]:
    """Return the expected names ``engine`` does not provide as callables."""
    missing: list[str] = []
    for name in capabilities:
        try:
            candidate = getattr(engine, name)
        except Exception:  # noqa: BLE001 - engines may raise anything from __getattr__
            candidate = None
        if not callable(candidate):
            missing.append(name)
    return missing


def ensure_capabilities(
    handle: EngineHandle | UnavailableEngine,
    capabilities: Mapping[str, StandInFactory],
) -> EngineHandle | UnavailableEngine:
    """Return ``handle`` with stand-ins for any missing capability."""
    if not handle.available or not capabilities:
        return handle
    missing = missing_capabilities(handle.engine, capabilities)
    if not missing:
        return handle

    target = handle.engine
    standins: dict[str, Callable[..., Any]] = {}
    if isinstance(target, CapabilityShim):
        standins.update(target._standins)  # noqa: SLF001
        target = target.shim_target
    for name in missing:
        standins[name] = capabilities[name](name)
    patched = tuple(dict.fromkeys((*handle.patched, *missing)))
    return replace(handle, engine=CapabilityShim(target, standins), patched=patched)


class CapabilityInterceptor:
    """Last-resort asyncio exception handler for missing-capability crashes.

    Adapter calls are already guarded; this only catches failures escaping
    detached tasks. A matching ``AttributeError`` is logged, reported and
    suppressed, and the engine's stand-ins are refreshed. Anything else goes
    to the previously installed handler.
    """

    def __init__(
        self,
        resolver: LibraryResolver,
        *,
        emitter: DiagnosticEmitter | None = None,
        previous: Callable[[asyncio.AbstractEventLoop, dict[str, Any]], Any] | None = None,
    ) -> None:
        self.resolver = resolver
        self.emitter = emitter
        self.previous = previous
        self.recovered: list[tuple[str, str]] = []

    def match(self, exc: BaseException | None) -> tuple[str, str] | None:
        """Return ``(engine, capability)`` when ``exc`` is a missing-capability crash."""
        if not isinstance(exc, AttributeError):
            return None
        capability = getattr(exc, "name", None)
        owner = getattr(exc, "obj", None)
        if not capability or owner is None:
            return None
        owner = unwrap_engine(owner)
        for name, engine in self.resolver.ready_engines():
            if unwrap_engine(engine) is owner and capability in self.resolver.capabilities(name):
                return name, capability
        return None

    def __call__(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        matched = self.match(context.get("exception"))
        if matched is None:
            if self.previous is not None:
                self.previous(loop, context)
            else:
                loop.default_exception_handler(context)
            return
        name, capability = matched
        self.resolver.handle_for_invocation(name)
        self.recovered.append(matched)
        logger.warning("Suppressed missing '%s' on engine '%s'", capability, name)
        record_event(
            self.emitter, "capability_recovered", {"name": name, "capability": capability}
        )


def install_exception_interceptor(
    loop: asyncio.AbstractEventLoop,
    resolver: LibraryResolver,
    *,
    emitter: DiagnosticEmitter | None = None,
) -> CapabilityInterceptor:
    """Install a :class:`CapabilityInterceptor` on ``loop`` and return it."""
    interceptor = CapabilityInterceptor(
        resolver, emitter=emitter, previous=loop.get_exception_handler()
    )
    loop.set_exception_handler(interceptor)
    return interceptor


__all__ = [
    "CapabilityInterceptor",
    "CapabilityShim",
    "ensure_capabilities",
    "install_exception_interceptor",
    "is_standin",
    "missing_capabilities",
    "noop_standin",
    "passthrough_standin",
    "unwrap_engine",
]
