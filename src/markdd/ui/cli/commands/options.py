"""Typer option declarations shared by the CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="YAML configuration file (environment overrides still apply).",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
]

__all__ = ["ConfigOption"]
