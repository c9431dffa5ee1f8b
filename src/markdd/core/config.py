"""Configuration models used by the preview core.

ResolutionConfig

`poll_attempts` (`int`)
: Maximum number of readiness checks performed after loading an engine from
  a source before moving on to the next source.

`poll_interval` (`float`)
: Delay in seconds between two readiness checks.

`allow_remote` (`bool`)
: Skip `remote-primary` and `remote-alternate` sources when `False`, e.g. for
  offline editing.

`remote_timeout` (`float`)
: Timeout in seconds applied to remote engine downloads and service health checks.

`engines_dir` (`Path | None`)
: Directory searched for locally provided engine modules. Defaults to
  `<user dir>/engines`.

`sources` (`dict[str, list[SourceOverride]]`)
: Extra acquisition sources appended to the built-in ones, keyed by engine
  name.

ServiceConfig

`plantuml_server` (`str`)
: Base URL of the PlantUML server used to build image references.

`kroki_servers` (`list[str]`)
: Kroki endpoints; the first one is the primary source, the rest are
  alternates.

`request_timeout` (`float`)
: Timeout in seconds applied to rendering requests.

RenderingConfig

`inline_math` (`bool`)
: Render `$...$` spans at compile time when the math engine is ready.

`cache_entries` (`int`)
: Number of rendered blocks kept in the in-memory render cache. `0`
  disables caching.

`host_tikz` (`bool`)
: Try the local TeX toolchain before remote TikZ rendering.

`latex_command` / `dvisvgm_command` (`str`)
: Executables used by the local TikZ host service.

`highlight` (`bool`)
: Syntax-highlight unrecognised code fences with Pygments.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml

from markdd.core.exceptions import MarkddError


SourceKindName = Literal["embedded", "direct-load", "remote-primary", "remote-alternate"]


class ConfigError(MarkddError):
    """Raised when a configuration file cannot be loaded."""


class SourceOverride(BaseModel):
    """Additional acquisition source declared by the user."""

    model_config = ConfigDict(extra="forbid")

    kind: SourceKindName
    locator: str
    loader: str | None = None
    integrity: str | None = None


class ResolutionConfig(BaseModel):
    """Settings steering engine acquisition."""

    model_config = ConfigDict(extra="forbid")

    poll_attempts: int = Field(default=50, ge=1)
    poll_interval: float = Field(default=0.1, ge=0)
    allow_remote: bool = True
    remote_timeout: float = Field(default=10.0, gt=0)
    engines_dir: Path | None = None
    sources: dict[str, list[SourceOverride]] = Field(default_factory=dict)


class ServiceConfig(BaseModel):
    """Remote rendering endpoints."""

    model_config = ConfigDict(extra="forbid")

    plantuml_server: str = "https://www.plantuml.com/plantuml"
    kroki_servers: list[str] = Field(default_factory=lambda: ["https://kroki.io"])
    request_timeout: float = Field(default=15.0, gt=0)

    @field_validator("plantuml_server")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("kroki_servers")
    @classmethod
    def _strip_server_slashes(cls, value: list[str]) -> list[str]:
        return [entry.rstrip("/") for entry in value if entry.strip()]


class RenderingConfig(BaseModel):
    """Switches for the compile and post-processing passes."""

    model_config = ConfigDict(extra="forbid")

    inline_math: bool = True
    cache_entries: int = Field(default=256, ge=0)
    host_tikz: bool = True
    latex_command: str = "latex"
    dvisvgm_command: str = "dvisvgm"
    highlight: bool = True


class PreviewConfig(BaseModel):
    """Top-level configuration of the preview core."""

    model_config = ConfigDict(extra="forbid")

    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    services: ServiceConfig = Field(default_factory=ServiceConfig)
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> PreviewConfig:
        """Load a YAML configuration file, applying environment overrides."""
        data: dict[str, Any] = {}
        if path is not None:
            config_path = Path(path).expanduser()
            try:
                raw = config_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError(f"Unable to read configuration '{config_path}': {exc}") from exc
            try:
                loaded = yaml.safe_load(raw) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in '{config_path}': {exc}") from exc
            if not isinstance(loaded, dict):
                raise ConfigError(f"Configuration '{config_path}' must be a mapping.")
            data = loaded
        _apply_environment(data)
        return cls.model_validate(data)


_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MARKDD_POLL_ATTEMPTS": ("resolution", "poll_attempts"),
    "MARKDD_POLL_INTERVAL": ("resolution", "poll_interval"),
    "MARKDD_ALLOW_REMOTE": ("resolution", "allow_remote"),
    "MARKDD_ENGINES_DIR": ("resolution", "engines_dir"),
    "MARKDD_PLANTUML_SERVER": ("services", "plantuml_server"),
}


def _apply_environment(data: dict[str, Any]) -> None:
    for variable, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value is None or not value.strip():
            continue
        bucket = data.setdefault(section, {})
        if isinstance(bucket, dict):
            bucket[key] = value.strip()
    kroki = os.environ.get("MARKDD_KROKI_SERVERS")
    if kroki and kroki.strip():
        bucket = data.setdefault("services", {})
        if isinstance(bucket, dict):
            bucket["kroki_servers"] = [entry.strip() for entry in kroki.split(",")]


__all__ = [
    "ConfigError",
    "PreviewConfig",
    "RenderingConfig",
    "ResolutionConfig",
    "ServiceConfig",
    "SourceOverride",
]
