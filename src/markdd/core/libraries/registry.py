"""Built-in engine descriptors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
import logging
from typing import Any

from markdd.core.config import PreviewConfig, SourceOverride

from .capabilities import noop_standin, passthrough_standin
from .descriptors import LibraryDescriptor, LibrarySource, SourceKind
from .loaders import CommandEngine, KrokiClient, resolve_executable


logger = logging.getLogger(__name__)

MATH = "latex2mathml"
GRAPHVIZ = "graphviz"
MERMAID = "mermaid-cli"
MARKMAP = "markmap"
VEGA = "vl-convert"
WAVEDROM = "wavedrom"
ABC = "abcm2ps"
LATEX = "latex"
DVISVGM = "dvisvgm"
KROKI = "kroki"


def _has(*names: str) -> Callable[[Any], bool]:
    def check(candidate: Any) -> bool:
        if candidate is None:
            return False
        return all(callable(getattr(candidate, name, None)) for name in names)

    return check


def _is_command(candidate: Any) -> bool:
    return isinstance(candidate, CommandEngine) and candidate.is_usable()


def _is_kroki(candidate: Any) -> bool:
    return isinstance(candidate, KrokiClient)


def _is_loaded(candidate: Any) -> bool:
    return candidate is not None


def _embedded_command(command: str) -> Callable[[], CommandEngine | None]:
    def resolve() -> CommandEngine | None:
        path = resolve_executable(command)
        return CommandEngine(path, name=command) if path else None

    return resolve


def _module(locator: str) -> LibrarySource:
    return LibrarySource(SourceKind.EMBEDDED, locator, loader="module")


def _executable(command: str) -> LibrarySource:
    return LibrarySource(SourceKind.DIRECT_LOAD, command, loader="executable")


def _kroki_sources(servers: list[str]) -> tuple[LibrarySource, ...]:
    sources: list[LibrarySource] = []
    for index, server in enumerate(servers):
        kind = SourceKind.REMOTE_PRIMARY if index == 0 else SourceKind.REMOTE_ALTERNATE
        sources.append(LibrarySource(kind, server, loader="service"))
    return tuple(sources)


def _override_source(override: SourceOverride) -> LibrarySource:
    return LibrarySource(
        kind=SourceKind(override.kind),
        locator=override.locator,
        loader=override.loader,
        integrity=override.integrity,
    )


def default_descriptors(config: PreviewConfig | None = None) -> list[LibraryDescriptor]:
    """Return the descriptors of every engine the adapters may use."""
    config = config or PreviewConfig()
    rendering = config.rendering
    descriptors = [
        LibraryDescriptor(
            name=MATH,
            label="LaTeX to MathML",
            sources=(_module("latex2mathml.converter"),),
            is_ready=_has("convert"),
        ),
        LibraryDescriptor(
            name=GRAPHVIZ,
            label="Graphviz",
            sources=(_module("graphviz"),),
            is_ready=_has("Source"),
        ),
        LibraryDescriptor(
            name=MERMAID,
            label="Mermaid CLI",
            sources=(_executable("mmdc"),),
            embedded_resolve=_embedded_command("mmdc"),
            is_ready=_is_command,
        ),
        LibraryDescriptor(
            name=MARKMAP,
            label="Markmap",
            sources=(
                _module("markmap"),
                LibrarySource(SourceKind.DIRECT_LOAD, "markmap.py", loader="file"),
            ),
            is_ready=_is_loaded,
            capabilities={"transform": noop_standin, "build_item": passthrough_standin},
        ),
        LibraryDescriptor(
            name=VEGA,
            label="Vega",
            sources=(_module("vl_convert"),),
            is_ready=_has("vegalite_to_svg"),
            capabilities={"vega_to_svg": noop_standin},
        ),
        LibraryDescriptor(
            name=WAVEDROM,
            label="WaveDrom",
            sources=(_module("wavedrom"),),
            is_ready=_has("render"),
        ),
        LibraryDescriptor(
            name=ABC,
            label="abcm2ps",
            sources=(_executable("abcm2ps"),),
            embedded_resolve=_embedded_command("abcm2ps"),
            is_ready=_is_command,
        ),
        LibraryDescriptor(
            name=LATEX,
            label="LaTeX",
            sources=(_executable(rendering.latex_command),),
            embedded_resolve=_embedded_command(rendering.latex_command),
            is_ready=_is_command,
        ),
        LibraryDescriptor(
            name=DVISVGM,
            label="dvisvgm",
            sources=(_executable(rendering.dvisvgm_command),),
            embedded_resolve=_embedded_command(rendering.dvisvgm_command),
            is_ready=_is_command,
            requires=(LATEX,),
        ),
        LibraryDescriptor(
            name=KROKI,
            label="Kroki",
            sources=_kroki_sources(config.services.kroki_servers),
            is_ready=_is_kroki,
        ),
    ]

    overrides = config.resolution.sources
    known = {descriptor.name for descriptor in descriptors}
    for name in overrides:
        if name not in known:
            logger.warning("Ignoring sources for unknown engine '%s'", name)

    return [
        replace(
            descriptor,
            sources=descriptor.sources
            + tuple(_override_source(entry) for entry in overrides.get(descriptor.name, ())),
        )
        if descriptor.name in overrides
        else descriptor
        for descriptor in descriptors
    ]


__all__ = [
    "ABC",
    "DVISVGM",
    "GRAPHVIZ",
    "KROKI",
    "LATEX",
    "MARKMAP",
    "MATH",
    "MERMAID",
    "VEGA",
    "WAVEDROM",
    "default_descriptors",
]
