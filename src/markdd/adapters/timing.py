"""WaveDrom timing diagrams."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import json
from typing import Any

import yaml

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import WAVEDROM

from .base import NotationAdapter, RenderStep, kroki_step


def parse_wavejson(payload: str) -> dict[str, Any]:
    """Parse WaveJSON, accepting the unquoted-key form used in examples."""
    if not payload.strip():
        raise ContentError("empty WaveDrom block")
    try:
        data = json.loads(payload)
    except ValueError:
        try:
            data = yaml.safe_load(payload)
        except yaml.YAMLError as exc:
            raise ContentError(f"invalid WaveJSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ContentError("WaveJSON must be an object")
    if not any(key in data for key in ("signal", "reg", "assign")):
        raise ContentError("WaveJSON needs a 'signal', 'reg' or 'assign' entry")
    return dict(data)


class TimingAdapter(NotationAdapter):
    notation = "timing"

    def prepare(self, payload: str, variant: str | None) -> str:
        return json.dumps(parse_wavejson(payload))

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [
            RenderStep("WaveDrom", self._render, engine=WAVEDROM),
            kroki_step("wavedrom", timeout=self.request_timeout),
        ]

    async def _render(self, engine: Any, source: str, variant: str | None) -> str:
        def draw() -> str:
            drawing = engine.render(source)
            if isinstance(drawing, str):
                return drawing
            return drawing.tostring()

        return await asyncio.to_thread(draw)


__all__ = ["TimingAdapter", "parse_wavejson"]
