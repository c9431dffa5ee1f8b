"""Host render service compiling TikZ with the local TeX toolchain."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import re
import tempfile
from typing import Protocol

from markdd.core.exceptions import MarkddError, exception_hint
from markdd.core.libraries.loaders import CommandEngine


logger = logging.getLogger(__name__)

DOCUMENT_CLASS = r"\documentclass[border=2pt]{standalone}"

_PREAMBLE_RE = re.compile(r"^\s*\\(usepackage|usetikzlibrary|tikzset|pgfplotsset)\b")
_ENVIRONMENTS = (r"\begin{tikzpicture}", r"\begin{circuitikz}")


@dataclass(frozen=True, slots=True)
class HostRequest:
    source_text: str
    variant: str | None = None


@dataclass(frozen=True, slots=True)
class HostResponse:
    success: bool
    content: str | None = None
    error: str | None = None


class HostRenderService(Protocol):
    """Privileged same-machine renderer answering :class:`HostRequest` calls."""

    async def render(self, request: HostRequest) -> HostResponse: ...


def tidy_source(code: str) -> str:
    """Trim trailing whitespace, keeping indentation and blank lines."""
    return "\n".join(line.rstrip() for line in code.split("\n"))


def is_circuit(code: str, variant: str | None) -> bool:
    return variant == "circuitikz" or r"\begin{circuitikz}" in code


def wrap_document(code: str, variant: str | None = None) -> str:
    """Wrap TikZ source into a standalone LaTeX document.

    A user supplied ``\\documentclass`` is replaced. Leading package and
    library declarations are hoisted into the preamble, and bare drawing
    commands get a ``tikzpicture`` (or ``circuitikz``) environment.
    """
    if r"\begin{document}" in code:
        kept = [
            line
            for line in code.split("\n")
            if not line.lstrip().startswith(r"\documentclass")
        ]
        return "\n".join([DOCUMENT_CLASS, *kept]).strip() + "\n"

    lines = code.split("\n")
    preamble: list[str] = []
    while lines and (not lines[0].strip() or _PREAMBLE_RE.match(lines[0])):
        line = lines.pop(0)
        if line.strip():
            preamble.append(line.strip())
    body = "\n".join(lines).strip("\n")

    circuit = is_circuit(code, variant)
    packages = [r"\usepackage{tikz}"]
    if circuit:
        packages.append(r"\usepackage{circuitikz}")
    packages.extend(entry for entry in preamble if entry not in packages)

    if not body.strip().startswith(_ENVIRONMENTS):
        environment = "circuitikz" if circuit else "tikzpicture"
        body = f"\\begin{{{environment}}}\n{body}\n\\end{{{environment}}}"

    document = [DOCUMENT_CLASS, *packages, r"\begin{document}", body, r"\end{document}"]
    return "\n".join(document) + "\n"


class LocalTexService:
    """Host service running ``latex`` then ``dvisvgm`` in a scratch directory."""

    def __init__(
        self,
        latex: CommandEngine,
        dvisvgm: CommandEngine,
        *,
        timeout: float = 30.0,
    ) -> None:
        self.latex = latex
        self.dvisvgm = dvisvgm
        self.timeout = timeout

    async def render(self, request: HostRequest) -> HostResponse:
        document = wrap_document(tidy_source(request.source_text), request.variant)
        try:
            with tempfile.TemporaryDirectory(prefix="markdd-tikz-") as tmp:
                working_dir = Path(tmp)
                (working_dir / "diagram.tex").write_text(document, encoding="utf-8")
                await self.latex.run(
                    ["-interaction=nonstopmode", "-halt-on-error", "diagram.tex"],
                    cwd=working_dir,
                    timeout=self.timeout,
                )
                await self.dvisvgm.run(
                    ["--no-fonts", "--exact-bbox", "-o", "diagram.svg", "diagram.dvi"],
                    cwd=working_dir,
                    timeout=self.timeout,
                )
                produced = working_dir / "diagram.svg"
                if not produced.exists():
                    return HostResponse(False, error="dvisvgm did not produce an SVG file")
                return HostResponse(True, content=produced.read_text(encoding="utf-8"))
        except (MarkddError, OSError) as exc:
            logger.debug("Local TeX rendering failed: %s", exc)
            return HostResponse(False, error=_latex_error(exc))


def _latex_error(exc: BaseException) -> str:
    message = exception_hint(exc) or type(exc).__name__
    for line in str(exc).splitlines():
        if line.startswith("! "):
            return line[2:].strip()
    return message


__all__ = [
    "DOCUMENT_CLASS",
    "HostRenderService",
    "HostRequest",
    "HostResponse",
    "LocalTexService",
    "is_circuit",
    "tidy_source",
    "wrap_document",
]
