"""Data structures exchanged between the compiler and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from markdd.core.encoding import decode_payload
from markdd.core.exceptions import FailureKind


class PlaceholderStatus(str, Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    RENDERED = "rendered"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PlaceholderStatus.RENDERED, PlaceholderStatus.ERROR)


_ORDER = {
    PlaceholderStatus.PENDING: 0,
    PlaceholderStatus.RENDERING: 1,
    PlaceholderStatus.RENDERED: 2,
    PlaceholderStatus.ERROR: 2,
}


@dataclass(frozen=True, slots=True)
class BlockFailure:
    """Contained failure of a single deferred block."""

    message: str
    source: str
    kind: FailureKind = FailureKind.CONTENT
    label: str | None = None


@dataclass(slots=True)
class PlaceholderContainer:
    """A deferred block awaiting post-processing."""

    id: str
    notation: str
    variant: str | None
    encoded_payload: str
    marker: str
    status: PlaceholderStatus = PlaceholderStatus.PENDING
    result: str | BlockFailure | None = None

    @property
    def payload(self) -> str:
        return decode_payload(self.encoded_payload)

    def advance(self, status: PlaceholderStatus) -> None:
        """Move to ``status``; moving backwards or out of a final state raises."""
        if self.status.is_terminal or _ORDER[status] <= _ORDER[self.status]:
            raise ValueError(
                f"Placeholder {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status


@dataclass(slots=True)
class CompiledDocument:
    """Output of the synchronous compile phase."""

    markup: str
    placeholders: list[PlaceholderContainer] = field(default_factory=list)
    front_matter: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RenderPass:
    """One compile plus post-process cycle of a render session."""

    id: int
    text: str
    markup: str = ""
    placeholders: list[PlaceholderContainer] = field(default_factory=list)
    front_matter: dict[str, Any] = field(default_factory=dict)
    output: str | None = None
    completed: bool = False
    superseded: bool = False

    @property
    def failures(self) -> list[PlaceholderContainer]:
        return [entry for entry in self.placeholders if entry.status is PlaceholderStatus.ERROR]


__all__ = [
    "BlockFailure",
    "CompiledDocument",
    "PlaceholderContainer",
    "PlaceholderStatus",
    "RenderPass",
]
