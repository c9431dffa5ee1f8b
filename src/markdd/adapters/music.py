"""ABC music notation engraved with abcm2ps."""

from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Any

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import ABC

from .base import NotationAdapter, RenderStep


def ensure_tune_header(source: str) -> str:
    """Prepend a reference number when the tune has none."""
    for line in source.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("%"):
            continue
        if stripped.startswith("X:"):
            return source
        break
    return f"X:1\n{source}"


class MusicAdapter(NotationAdapter):
    notation = "music"

    def prepare(self, payload: str, variant: str | None) -> str:
        if not payload.strip():
            raise ContentError("empty ABC tune")
        return ensure_tune_header(payload)

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [RenderStep("abcm2ps", self._engrave, engine=ABC)]

    async def _engrave(self, engine: Any, source: str, variant: str | None) -> str:
        with tempfile.TemporaryDirectory(prefix="markdd-abc-") as tmp:
            working_dir = Path(tmp)
            (working_dir / "tune.abc").write_text(source, encoding="utf-8")
            await engine.run(
                ["-g", "-O", "score", "tune.abc"],
                cwd=working_dir,
                timeout=self.request_timeout,
            )
            pages = sorted(working_dir.glob("score*.svg"))
            if not pages:
                raise ContentError("abcm2ps did not produce any SVG page")
            return "".join(page.read_text(encoding="utf-8") for page in pages)


__all__ = ["MusicAdapter", "ensure_tune_header"]
