"""CLI command implementations exposed via ``markdd.ui.cli``."""

from __future__ import annotations

from .libraries import libraries
from .render import render


__all__ = ["libraries", "render"]
