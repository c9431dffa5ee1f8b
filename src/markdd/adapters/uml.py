"""PlantUML diagrams referenced as images served by a PlantUML server."""

from __future__ import annotations

from html import escape
from typing import Any

from markdd.core.encoding import plantuml_encode
from markdd.core.exceptions import ContentError

from .base import NotationAdapter, RenderStep


class UmlAdapter(NotationAdapter):
    """Emit an ``<img>`` pointing at the configured server.

    The browser fetches the image; an unreachable server shows up as a
    broken reference rather than a block error.
    """

    notation = "uml"

    def prepare(self, payload: str, variant: str | None) -> str:
        source = payload.strip()
        if not source:
            raise ContentError("empty PlantUML block")
        if not source.startswith("@start"):
            source = f"@startuml\n{source}\n@enduml"
        return source

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [RenderStep("PlantUML server", self._reference)]

    def image_url(self, source: str) -> str:
        return f"{self.config.services.plantuml_server}/svg/{plantuml_encode(source)}"

    async def _reference(self, _engine: Any, source: str, variant: str | None) -> str:
        url = escape(self.image_url(source), quote=True)
        return f'<img class="plantuml" src="{url}" alt="PlantUML diagram" loading="lazy">'


__all__ = ["UmlAdapter"]
