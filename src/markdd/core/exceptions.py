"""Exception hierarchy and failure taxonomy for the preview pipeline."""

from __future__ import annotations

from enum import Enum


class MarkddError(RuntimeError):
    """Base exception for preview rendering failures."""


class EngineUnavailableError(MarkddError):
    """Raised when a rendering engine could not be acquired from any source."""

    def __init__(self, name: str, reason: str | None = None) -> None:
        message = f"Rendering engine '{name}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name
        self.reason = reason


class MissingCapabilityError(MarkddError):
    """Raised when a loaded engine lacks a function adapters rely on."""

    def __init__(self, engine: str, capability: str) -> None:
        super().__init__(f"Engine '{engine}' does not provide '{capability}'")
        self.engine = engine
        self.capability = capability


class ContentError(MarkddError):
    """Raised when a block's source is malformed for its notation."""


class TransportError(MarkddError):
    """Raised when a remote service or local helper process cannot be reached."""


class HostServiceError(TransportError):
    """Raised when the privileged host render service fails."""


class TLSCertificateError(TransportError):
    """Raised when TLS certificate verification fails during downloads."""


class FailureKind(str, Enum):
    """Categories used to decide how far a failure may propagate."""

    ACQUISITION = "acquisition"
    API_SHAPE = "api-shape"
    CONTENT = "content"
    TRANSPORT = "transport"


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception onto the failure taxonomy."""
    match exc:
        case EngineUnavailableError():
            return FailureKind.ACQUISITION
        case MissingCapabilityError():
            return FailureKind.API_SHAPE
        case TransportError() | OSError() | TimeoutError():
            return FailureKind.TRANSPORT
        case AttributeError() if getattr(exc, "name", None):
            return FailureKind.API_SHAPE
        case _:
            return FailureKind.CONTENT


def exception_messages(exc: BaseException) -> list[str]:
    """Return the collected message chain for an exception and its causes."""
    messages: list[str] = []
    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        text = str(current).strip()
        if text:
            first_line = text.splitlines()[0].strip()
            if first_line:
                messages.append(first_line)
        current = current.__cause__ or current.__context__
    return messages


def exception_hint(exc: BaseException) -> str | None:
    """Return the most specific message available for an exception chain."""
    messages = exception_messages(exc)
    return messages[-1] if messages else None


__all__ = [
    "ContentError",
    "EngineUnavailableError",
    "FailureKind",
    "HostServiceError",
    "MarkddError",
    "MissingCapabilityError",
    "TLSCertificateError",
    "TransportError",
    "classify_failure",
    "exception_hint",
    "exception_messages",
]
