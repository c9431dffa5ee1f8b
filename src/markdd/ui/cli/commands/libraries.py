"""Implementation of the ``markdd libraries`` command."""

from __future__ import annotations

import asyncio
from typing import Annotated

from rich import box
from rich.table import Table
import typer

from markdd.api import PreviewService
from markdd.core.libraries.descriptors import EngineHandle, ResolutionSummary
from markdd.core.user_dir import user_paths

from ..diagnostics import CliEmitter
from ..state import get_cli_state, render_message
from .options import ConfigOption
from .render import load_config


RetryOption = Annotated[
    bool,
    typer.Option(
        "--retry",
        help="Resolve a second time, retrying engines that failed on the first pass.",
    ),
]
ClearCacheOption = Annotated[
    bool,
    typer.Option(
        "--clear-cache",
        help="Delete downloaded engine modules before resolving.",
    ),
]


def _readiness_table(service: PreviewService, summary: ResolutionSummary) -> Table:
    table = Table(title="Rendering engines", box=box.SIMPLE, header_style="bold")
    table.add_column("Engine", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Details", overflow="fold")

    for name in service.resolver.names:
        handle = service.resolver.peek(name)
        if isinstance(handle, EngineHandle):
            patched = ", ".join(handle.patched)
            details = f"stand-ins: {patched}" if patched else ""
            table.add_row(name, "[green]ready[/]", handle.origin, details)
        else:
            reason = summary.reasons.get(name, "")
            table.add_row(name, "[red]unavailable[/]", "-", reason)
    return table


def _resolve(service: PreviewService, retry: bool) -> ResolutionSummary:
    async def run() -> ResolutionSummary:
        summary = await service.resolve_all()
        if retry and summary.failed:
            render_message("info", f"Retrying {len(summary.failed)} unavailable engine(s)")
            summary = await service.resolve_all(retry=True)
        return summary

    return asyncio.run(run())


def libraries(
    retry: RetryOption = False,
    clear_cache: ClearCacheOption = False,
    config_path: ConfigOption = None,
) -> None:
    """Resolve every rendering engine and report which ones are usable."""
    state = get_cli_state()
    config = load_config(config_path)

    if clear_cache:
        removed = user_paths().clear_downloads()
        state.console.print(f"Removed {len(removed)} downloaded engine module(s).")

    service = PreviewService(config, CliEmitter(state=state))
    summary = _resolve(service, retry)
    state.console.print(_readiness_table(service, summary))
    state.console.print(f"{len(summary.succeeded)}/{summary.total} engine(s) ready.")


__all__ = ["libraries"]
