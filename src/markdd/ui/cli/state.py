"""Per-invocation CLI state: verbosity, consoles and a tally of render problems."""

from __future__ import annotations

from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text
import typer


__all__ = [
    "CLIState",
    "configure_logging",
    "debug_enabled",
    "emit_error",
    "emit_warning",
    "get_cli_state",
    "render_message",
    "set_cli_state",
]


@dataclass(slots=True)
class CLIState:
    """Options of the running command plus the engines and blocks that failed."""

    verbosity: int = 0
    show_tracebacks: bool = False
    unavailable_engines: dict[str, str] = field(default_factory=dict)
    failed_blocks: int = 0
    _console: Console | None = field(default=None, init=False, repr=False)
    _err_console: Console | None = field(default=None, init=False, repr=False)

    @property
    def console(self) -> Console:
        # Rebuilt when stdout is swapped, as CliRunner does.
        if self._console is None or self._console.file is not sys.stdout:
            self._console = Console(file=sys.stdout)
        return self._console

    @property
    def err_console(self) -> Console:
        if self._err_console is None or self._err_console.file is not sys.stderr:
            self._err_console = Console(file=sys.stderr, highlight=False)
        return self._err_console

    def note(self, name: str, payload: Mapping[str, Any]) -> None:
        """Update the tallies from a diagnostic event."""
        engine = str(payload.get("name", ""))
        if name == "library_failed":
            self.unavailable_engines[engine] = str(payload.get("reason", ""))
        elif name == "library_resolved":
            self.unavailable_engines.pop(engine, None)
        elif name == "placeholder_failed":
            self.failed_blocks += 1


_STATE: ContextVar[CLIState | None] = ContextVar("markdd_cli_state", default=None)


def _context_state(ctx: click.Context | None) -> CLIState | None:
    if ctx is None:
        return None
    root = ctx.find_root()
    if not isinstance(root.obj, CLIState):
        root.obj = CLIState()
    return root.obj


def get_cli_state(ctx: typer.Context | click.Context | None = None) -> CLIState:
    """Return the state stored on the root click context, or the ambient one."""
    state = _context_state(ctx or click.get_current_context(silent=True))
    if state is None:
        state = _STATE.get() or CLIState()
    _STATE.set(state)
    return state


def set_cli_state(
    *,
    ctx: typer.Context | None = None,
    verbosity: int | None = None,
    debug: bool | None = None,
) -> CLIState:
    state = get_cli_state(ctx)
    if verbosity is not None:
        state.verbosity = max(0, verbosity)
    if debug is not None:
        state.show_tracebacks = debug
    return state


def debug_enabled() -> bool:
    """Return whether ``--debug`` asked for full tracebacks."""
    state = _STATE.get()
    return state is not None and state.show_tracebacks


def configure_logging(state: CLIState) -> None:
    """Send ``markdd`` loggers to stderr through rich at the chosen verbosity."""
    if state.verbosity >= 2 or state.show_tracebacks:
        level = logging.DEBUG
    elif state.verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger("markdd")
    for handler in [entry for entry in logger.handlers if isinstance(entry, RichHandler)]:
        logger.removeHandler(handler)
    logger.addHandler(
        RichHandler(
            console=state.err_console,
            show_path=state.verbosity >= 3,
            rich_tracebacks=state.show_tracebacks,
        )
    )
    logger.setLevel(level)


def _causes(exc: BaseException) -> list[str]:
    causes: list[str] = []
    seen: set[int] = set()
    current = exc.__cause__ or exc.__context__
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        causes.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return causes


def _details(message: str, exception: BaseException, verbosity: int) -> list[str]:
    if verbosity < 1:
        return []
    lines: list[str] = []
    detail = str(exception).strip()
    if detail and detail not in message:
        lines.append(detail)
    lines.append(f"type: {type(exception).__name__}")
    causes = _causes(exception) if verbosity >= 2 else []
    if causes:
        lines.append("caused by:")
        lines.extend(f"  {cause}" for cause in causes)
    return lines


def render_message(
    level: str,
    message: str,
    *,
    exception: BaseException | None = None,
) -> None:
    """Print ``message`` to stderr; ``info`` only shows with ``-v``."""
    state = get_cli_state()
    if level == "info":
        if state.verbosity >= 1:
            state.err_console.log(message)
        return

    style = "red" if level == "error" else "yellow"
    text = Text.assemble((f"{level}: ", f"bold {style}"), (message, style))
    if exception is not None:
        lines = _details(message, exception, state.verbosity)
        if lines:
            text.append("\n" + "\n".join(lines), style=style)
    state.err_console.print(text)


def emit_warning(message: str, *, exception: BaseException | None = None) -> None:
    render_message("warning", message, exception=exception)


def emit_error(message: str, *, exception: BaseException | None = None) -> None:
    render_message("error", message, exception=exception)
