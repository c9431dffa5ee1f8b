from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError
import pytest

from markdd.core.config import ConfigError, PreviewConfig
from markdd.core.libraries import SourceKind, default_descriptors
from markdd.core.libraries.registry import DVISVGM, KROKI, LATEX, MARKMAP


def test_defaults() -> None:
    config = PreviewConfig()

    assert config.resolution.poll_attempts == 50
    assert config.resolution.poll_interval == 0.1
    assert config.resolution.allow_remote is True
    assert config.rendering.inline_math is True
    assert config.rendering.cache_entries == 256
    assert config.services.kroki_servers == ["https://kroki.io"]


def test_load_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "markdd.yml"
    path.write_text(
        "resolution:\n"
        "  poll_attempts: 3\n"
        "  sources:\n"
        "    markmap:\n"
        "      - kind: remote-primary\n"
        "        locator: https://cdn.example/markmap.py\n"
        "services:\n"
        "  kroki_servers: ['https://kroki.internal/', 'https://kroki.io']\n",
        encoding="utf-8",
    )

    config = PreviewConfig.load(path)

    assert config.resolution.poll_attempts == 3
    assert config.services.kroki_servers == ["https://kroki.internal", "https://kroki.io"]
    assert config.resolution.sources["markmap"][0].locator == "https://cdn.example/markmap.py"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MARKDD_POLL_ATTEMPTS", "7")
    monkeypatch.setenv("MARKDD_ALLOW_REMOTE", "false")
    monkeypatch.setenv("MARKDD_ENGINES_DIR", str(tmp_path))
    monkeypatch.setenv("MARKDD_KROKI_SERVERS", "https://a.example, https://b.example")

    config = PreviewConfig.load()

    assert config.resolution.poll_attempts == 7
    assert config.resolution.allow_remote is False
    assert config.resolution.engines_dir == tmp_path
    assert config.services.kroki_servers == ["https://a.example", "https://b.example"]


def test_invalid_yaml_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "broken.yml"
    path.write_text("resolution: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        PreviewConfig.load(path)


def test_non_mapping_and_missing_files(tmp_path: Path) -> None:
    path = tmp_path / "list.yml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="must be a mapping"):
        PreviewConfig.load(path)
    with pytest.raises(ConfigError, match="Unable to read"):
        PreviewConfig.load(tmp_path / "missing.yml")


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ValidationError):
        PreviewConfig.model_validate({"rendering": {"colour": "blue"}})


def test_default_descriptors_follow_configuration() -> None:
    config = PreviewConfig.model_validate(
        {
            "services": {"kroki_servers": ["https://one.example", "https://two.example"]},
            "rendering": {"latex_command": "lualatex"},
            "resolution": {
                "sources": {
                    "markmap": [{"kind": "direct-load", "locator": "vendor/markmap.py"}],
                    "unknown-engine": [{"kind": "embedded", "locator": "nothing"}],
                }
            },
        }
    )

    descriptors = {entry.name: entry for entry in default_descriptors(config)}

    kroki = descriptors[KROKI]
    assert [(source.kind, source.locator) for source in kroki.sources] == [
        (SourceKind.REMOTE_PRIMARY, "https://one.example"),
        (SourceKind.REMOTE_ALTERNATE, "https://two.example"),
    ]
    assert descriptors[LATEX].sources[0].locator == "lualatex"
    assert descriptors[DVISVGM].requires == (LATEX,)
    assert descriptors[MARKMAP].sources[-1].locator == "vendor/markmap.py"
    assert set(descriptors[MARKMAP].capabilities) == {"transform", "build_item"}
    assert "unknown-engine" not in descriptors
