"""Records describing rendering engines and their resolution state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceKind(str, Enum):
    """Acquisition source kinds, in the order they are attempted."""

    EMBEDDED = "embedded"
    DIRECT_LOAD = "direct-load"
    REMOTE_PRIMARY = "remote-primary"
    REMOTE_ALTERNATE = "remote-alternate"

    @property
    def rank(self) -> int:
        return _KIND_RANK[self]

    @property
    def is_remote(self) -> bool:
        return self in (SourceKind.REMOTE_PRIMARY, SourceKind.REMOTE_ALTERNATE)


_KIND_RANK = {
    SourceKind.EMBEDDED: 0,
    SourceKind.DIRECT_LOAD: 1,
    SourceKind.REMOTE_PRIMARY: 2,
    SourceKind.REMOTE_ALTERNATE: 3,
}


@dataclass(frozen=True, slots=True)
class LibrarySource:
    """One place an engine may be acquired from.

    ``loader`` names the loader used for the source; when omitted the loader
    is derived from ``kind`` and ``locator`` (see
    :func:`markdd.core.libraries.loaders.default_loader_name`). ``integrity``
    is the sha256 hex digest a downloaded module must match; remote modules
    without one are refused.
    """

    kind: SourceKind
    locator: str
    loader: str | None = None
    integrity: str | None = None

    def describe(self) -> str:
        return f"{self.kind.value}:{self.locator}"


StandInFactory = Callable[[str], Callable[..., Any]]


@dataclass(frozen=True, slots=True)
class LibraryDescriptor:
    """Immutable description of a rendering engine."""

    name: str
    sources: tuple[LibrarySource, ...] = ()
    is_ready: Callable[[Any], bool] = bool
    preconfigure: Callable[[], None] | None = None
    embedded_resolve: Callable[[], Any] | None = None
    capabilities: Mapping[str, StandInFactory] = field(default_factory=dict)
    requires: tuple[str, ...] = ()
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.name

    def ranked_sources(self) -> list[LibrarySource]:
        """Return sources sorted by kind rank, keeping declaration order on ties."""
        return sorted(self.sources, key=lambda source: source.kind.rank)


@dataclass(frozen=True, slots=True)
class EngineHandle:
    """Resolved, ready-to-use reference to a rendering engine."""

    name: str
    engine: Any
    source: LibrarySource | None = None
    patched: tuple[str, ...] = ()

    available = True

    def __bool__(self) -> bool:
        return True

    @property
    def origin(self) -> str:
        return self.source.describe() if self.source is not None else "runtime"


@dataclass(frozen=True, slots=True)
class UnavailableEngine:
    """Sentinel handle returned when every source failed."""

    name: str
    reason: str | None = None

    available = False
    engine = None
    patched: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return False


class ResolutionStatus(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    READY = "ready"
    FAILED = "failed"


@dataclass(slots=True)
class ResolutionState:
    """Mutable resolution bookkeeping for one descriptor."""

    name: str
    status: ResolutionStatus = ResolutionStatus.UNRESOLVED
    handle: EngineHandle | UnavailableEngine | None = None
    in_flight: asyncio.Future[Any] | None = None
    attempts: int = 0
    last_error: str | None = None


@dataclass(slots=True)
class ResolutionSummary:
    """Outcome of :meth:`LibraryResolver.resolve_all`."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    reasons: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def all_ready(self) -> bool:
        return not self.failed


__all__ = [
    "EngineHandle",
    "LibraryDescriptor",
    "LibrarySource",
    "ResolutionState",
    "ResolutionStatus",
    "ResolutionSummary",
    "SourceKind",
    "StandInFactory",
    "UnavailableEngine",
]
