"""Vega and Vega-Lite chart specifications."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import json
from typing import Any

import yaml

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import VEGA

from .base import NotationAdapter, RenderStep, kroki_step


def parse_spec(payload: str) -> dict[str, Any]:
    """Parse a JSON (or YAML) chart specification into a mapping."""
    if not payload.strip():
        raise ContentError("empty chart specification")
    try:
        data = json.loads(payload)
    except ValueError:
        try:
            data = yaml.safe_load(payload)
        except yaml.YAMLError as exc:
            raise ContentError(f"invalid chart specification: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ContentError("chart specification must be an object")
    return dict(data)


def chart_kind(spec: Mapping[str, Any], variant: str | None) -> str:
    """Return ``vega`` or ``vega-lite`` from the ``$schema`` or the fence."""
    schema = str(spec.get("$schema") or "")
    if "vega-lite" in schema:
        return "vega-lite"
    if "/vega/" in schema:
        return "vega"
    return "vega" if variant == "vega" else "vega-lite"


class ChartAdapter(NotationAdapter):
    notation = "chart"

    def prepare(self, payload: str, variant: str | None) -> str:
        return json.dumps(parse_spec(payload), sort_keys=True)

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [
            RenderStep("vl-convert", self._convert, engine=VEGA),
            RenderStep("Kroki", self._kroki),
        ]

    async def _convert(self, engine: Any, source: str, variant: str | None) -> str:
        spec = json.loads(source)
        if chart_kind(spec, variant) == "vega":
            return await asyncio.to_thread(engine.vega_to_svg, spec)
        return await asyncio.to_thread(engine.vegalite_to_svg, spec)

    async def _kroki(self, _engine: Any, source: str, variant: str | None) -> str:
        kind = chart_kind(json.loads(source), variant)
        step = kroki_step(kind.replace("-", ""), timeout=self.request_timeout)
        return await self._invoke(step, source, variant)


__all__ = ["ChartAdapter", "chart_kind", "parse_spec"]
