"""Primary public API for markdd."""

from __future__ import annotations

from markdd.api import PreviewService, render, standalone_html
from markdd.core.config import PreviewConfig
from markdd.core.diagnostics import LoggingEmitter, NullEmitter, RecordingEmitter
from markdd.core.exceptions import FailureKind, MarkddError
from markdd.core.libraries import (
    EngineHandle,
    LibraryDescriptor,
    LibraryResolver,
    LibrarySource,
    ResolutionSummary,
    SourceKind,
    UnavailableEngine,
)
from markdd.core.rendering.models import BlockFailure, PlaceholderStatus, RenderPass
from markdd.core.user_dir import UserPaths, use_user_paths, user_paths
from markdd.version import get_version


__version__ = get_version()

__all__ = [
    "BlockFailure",
    "EngineHandle",
    "FailureKind",
    "LibraryDescriptor",
    "LibraryResolver",
    "LibrarySource",
    "LoggingEmitter",
    "MarkddError",
    "NullEmitter",
    "PlaceholderStatus",
    "PreviewConfig",
    "PreviewService",
    "RecordingEmitter",
    "RenderPass",
    "ResolutionSummary",
    "SourceKind",
    "UnavailableEngine",
    "UserPaths",
    "__version__",
    "get_version",
    "render",
    "standalone_html",
    "use_user_paths",
    "user_paths",
]
