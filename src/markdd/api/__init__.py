"""High-level API for hosts embedding the preview core."""

from __future__ import annotations

from .service import PreviewService, render, standalone_html


__all__ = ["PreviewService", "render", "standalone_html"]
