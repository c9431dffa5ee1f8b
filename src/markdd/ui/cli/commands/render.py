"""Implementation of the ``markdd render`` command."""

from __future__ import annotations

import asyncio
from pathlib import Path
import sys
from typing import Annotated

import typer

from markdd.api import PreviewService, standalone_html
from markdd.core.config import ConfigError, PreviewConfig
from markdd.core.rendering.models import RenderPass

from ..diagnostics import CliEmitter
from ..state import debug_enabled, emit_error, emit_warning, get_cli_state, render_message
from .options import ConfigOption


InputArgument = Annotated[
    Path,
    typer.Argument(
        help="Markdown document to render ('-' reads from stdin).",
        allow_dash=True,
    ),
]

OutputOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Write the HTML to this file instead of stdout.",
        dir_okay=False,
        resolve_path=True,
    ),
]

FullDocumentOption = Annotated[
    bool,
    typer.Option(
        "--full-document",
        help="Wrap the preview fragment into a standalone HTML page.",
    ),
]


def load_config(path: Path | None) -> PreviewConfig:
    """Load the CLI configuration, aborting the command on invalid files."""
    try:
        return PreviewConfig.load(path)
    except (ConfigError, ValueError) as exc:
        if debug_enabled():
            raise
        emit_error(str(exc), exception=exc)
        raise typer.Exit(code=1) from exc


def _read_input(input_path: Path) -> str:
    if str(input_path) == "-":
        return sys.stdin.read()
    try:
        return input_path.read_text(encoding="utf-8")
    except OSError as exc:
        if debug_enabled():
            raise
        emit_error(f"Unable to read '{input_path}': {exc.strerror or exc}", exception=exc)
        raise typer.Exit(code=1) from exc


def _document_title(render_pass: RenderPass, input_path: Path) -> str:
    title = render_pass.front_matter.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    if str(input_path) == "-":
        return "Preview"
    return input_path.stem


def render(
    input_path: InputArgument,
    output: OutputOption = None,
    full_document: FullDocumentOption = False,
    config_path: ConfigOption = None,
) -> None:
    """Render a Markdown document, including every notation block, to HTML."""
    state = get_cli_state()
    config = load_config(config_path)
    text = _read_input(input_path)

    service = PreviewService(config, CliEmitter(state=state))
    render_pass = asyncio.run(service.render_pass(text))
    html = render_pass.output or ""

    if state.failed_blocks:
        emit_warning(f"{state.failed_blocks} block(s) could not be rendered.")
        if state.unavailable_engines:
            unavailable = ", ".join(sorted(state.unavailable_engines))
            render_message("info", f"Unavailable engines: {unavailable}")

    if full_document:
        lang = render_pass.front_matter.get("lang")
        html = standalone_html(
            html,
            title=_document_title(render_pass, input_path),
            lang=lang if isinstance(lang, str) and lang else "en",
        )

    if output is None:
        typer.echo(html, nl=not html.endswith("\n"))
        return

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html, encoding="utf-8")
    except OSError as exc:
        if debug_enabled():
            raise
        emit_error(f"Unable to write '{output}': {exc.strerror or exc}", exception=exc)
        raise typer.Exit(code=1) from exc
    if state.verbosity >= 1:
        state.err_console.print(f"[cyan]Preview written to[/] {output}")


__all__ = ["load_config", "render"]
