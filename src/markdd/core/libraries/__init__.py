"""Rendering engine descriptors, loaders and the resolution engine."""

from __future__ import annotations

from .capabilities import (
    CapabilityInterceptor,
    CapabilityShim,
    ensure_capabilities,
    install_exception_interceptor,
    is_standin,
    noop_standin,
    passthrough_standin,
)
from .descriptors import (
    EngineHandle,
    LibraryDescriptor,
    LibrarySource,
    ResolutionState,
    ResolutionStatus,
    ResolutionSummary,
    SourceKind,
    UnavailableEngine,
)
from .loaders import CommandEngine, KrokiClient, LoaderContext, register_loader
from .registry import default_descriptors
from .resolver import LibraryResolver


__all__ = [
    "CapabilityInterceptor",
    "CapabilityShim",
    "CommandEngine",
    "EngineHandle",
    "KrokiClient",
    "LibraryDescriptor",
    "LibraryResolver",
    "LibrarySource",
    "LoaderContext",
    "ResolutionState",
    "ResolutionStatus",
    "ResolutionSummary",
    "SourceKind",
    "UnavailableEngine",
    "default_descriptors",
    "ensure_capabilities",
    "install_exception_interceptor",
    "is_standin",
    "noop_standin",
    "passthrough_standin",
    "register_loader",
]
