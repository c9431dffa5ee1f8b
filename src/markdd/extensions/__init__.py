"""Python-Markdown extensions used by the placeholder compiler."""

from __future__ import annotations

from .containers import ContainerExtension
from .deferred_fences import deferred_custom_fences
from .deferred_math import DeferredMathExtension


__all__ = ["ContainerExtension", "DeferredMathExtension", "deferred_custom_fences"]
