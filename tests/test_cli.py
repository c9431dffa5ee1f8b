from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from typer.testing import CliRunner

from markdd import get_version
import markdd.api.service as service_module
from markdd.core.libraries import LibraryDescriptor
from markdd.core.libraries.registry import KROKI, MATH, MERMAID
from markdd.core.user_dir import user_paths
from markdd.ui.cli import app


def _fake_mathml() -> Any:
    def convert(tex: str, display: str = "inline") -> str:
        return f'<math display="{display}"><mi>{tex}</mi></math>'

    return SimpleNamespace(convert=convert)


@pytest.fixture(autouse=True)
def offline_engines(monkeypatch: pytest.MonkeyPatch) -> None:
    def descriptors(config: Any = None) -> list[LibraryDescriptor]:
        return [
            LibraryDescriptor(MATH, embedded_resolve=_fake_mathml),
            LibraryDescriptor(MERMAID),
            LibraryDescriptor(KROKI),
        ]

    monkeypatch.setattr(service_module, "default_descriptors", descriptors)
    monkeypatch.setenv("MARKDD_POLL_INTERVAL", "0")


def test_render_markdown_file(tmp_path: Path) -> None:
    source = tmp_path / "intro.md"
    source.write_text("# Intro\n\nArea is $a^2$.\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["render", str(source)])

    assert result.exit_code == 0, result.output
    assert '<h1 id="intro">Intro</h1>' in result.stdout
    assert '<math display="inline"><mi>a^2</mi></math>' in result.stdout


def test_render_from_stdin() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["render", "-"], input="Hello *world*\n")

    assert result.exit_code == 0, result.output
    assert "<p>Hello <em>world</em></p>" in result.stdout


def test_render_full_document_to_file(tmp_path: Path) -> None:
    source = tmp_path / "notes.md"
    source.write_text("---\ntitle: Field Notes\nlang: fr\n---\n\nBody\n", encoding="utf-8")
    output = tmp_path / "out" / "notes.html"

    runner = CliRunner()
    result = runner.invoke(app, ["render", str(source), "-o", str(output), "--full-document"])

    assert result.exit_code == 0, result.output
    html = output.read_text(encoding="utf-8")
    assert "<title>Field Notes</title>" in html
    assert '<html lang="fr">' in html
    assert "<p>Body</p>" in html
    assert result.stdout == ""


def test_render_reports_failed_blocks(tmp_path: Path) -> None:
    source = tmp_path / "flow.md"
    source.write_text("```mermaid\nA-->B\n```\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["render", str(source)])

    assert result.exit_code == 0, result.output
    assert "Diagram error:" in result.output
    assert "1 block(s) could not be rendered." in result.output


def test_render_missing_input(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["render", str(tmp_path / "absent.md")])

    assert result.exit_code == 1
    assert "Unable to read" in result.output


def test_render_rejects_invalid_config(tmp_path: Path) -> None:
    source = tmp_path / "doc.md"
    source.write_text("Body\n", encoding="utf-8")
    config = tmp_path / "markdd.yml"
    config.write_text("rendering: [broken\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["render", "--config", str(config), str(source)])

    assert result.exit_code == 1
    assert "Invalid YAML" in result.output


def test_libraries_reports_engine_readiness() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["libraries"])

    assert result.exit_code == 0, result.output
    assert "Rendering engines" in result.stdout
    assert MATH in result.stdout
    assert "ready" in result.stdout
    assert "unavailable" in result.stdout
    assert "1/3 engine(s) ready." in result.stdout


def test_libraries_retry_resolves_failed_engines_again(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    def warming_up() -> Any:
        calls.append("math")
        if len(calls) == 1:
            raise RuntimeError("engine still starting")
        return _fake_mathml()

    def descriptors(config: Any = None) -> list[LibraryDescriptor]:
        return [LibraryDescriptor(MATH, embedded_resolve=warming_up), LibraryDescriptor(KROKI)]

    monkeypatch.setattr(service_module, "default_descriptors", descriptors)

    runner = CliRunner()
    result = runner.invoke(app, ["libraries", "--retry"])

    assert result.exit_code == 0, result.output
    assert calls == ["math", "math"]
    assert "1/2 engine(s) ready." in result.stdout


def test_libraries_without_retry_resolves_once(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    def warming_up() -> Any:
        calls.append("math")
        raise RuntimeError("engine still starting")

    monkeypatch.setattr(
        service_module,
        "default_descriptors",
        lambda config=None: [LibraryDescriptor(MATH, embedded_resolve=warming_up)],
    )

    result = CliRunner().invoke(app, ["libraries"])

    assert result.exit_code == 0, result.output
    assert calls == ["math"]
    assert "0/1 engine(s) ready." in result.stdout


def test_libraries_clear_cache_removes_downloads() -> None:
    downloads = user_paths().download_dir()
    cached = downloads / "0123-markmap.py"
    cached.write_text("VALUE = 1\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["libraries", "--clear-cache"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 downloaded engine module(s)." in result.stdout
    assert not cached.exists()


def test_version_flag() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert result.stdout.strip() == get_version()


def test_help_lists_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "render" in result.stdout
    assert "libraries" in result.stdout
