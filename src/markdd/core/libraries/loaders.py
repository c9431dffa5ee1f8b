"""Source loaders turning a :class:`LibrarySource` into an engine candidate.

Loaders are plain callables ``loader(source, context) -> candidate`` kept in a
registry keyed by name. They may raise anything; the resolver treats a raised
exception as "this source did not produce an engine" and moves on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from hashlib import sha256
import importlib
import importlib.util
import logging
import os
from pathlib import Path
import re
import shutil
import subprocess
import sys
from types import ModuleType
from typing import Any
from urllib.parse import urlparse

from markdd.core import http
from markdd.core.exceptions import ContentError, EngineUnavailableError, TransportError
from markdd.core.user_dir import DOWNLOADS_NAMESPACE, user_paths

from .descriptors import LibrarySource, SourceKind


logger = logging.getLogger(__name__)

#: Locations searched when an executable is not on ``PATH``.
CLI_HINT_PATHS: dict[str, tuple[Path, ...]] = {
    "mmdc": (Path("/snap/bin/mmdc"), Path.home() / "node_modules" / ".bin" / "mmdc"),
    "abcm2ps": (Path("/snap/bin/abcm2ps"), Path("/opt/homebrew/bin/abcm2ps")),
}


@dataclass(frozen=True, slots=True)
class LoaderContext:
    """Settings shared by every loader of a resolver."""

    engines_dir: Path | None = None
    remote_timeout: float = 10.0
    cache_namespace: str = DOWNLOADS_NAMESPACE

    def resolve_path(self, locator: str) -> Path:
        path = Path(locator).expanduser()
        if not path.is_absolute() and self.engines_dir is not None:
            return self.engines_dir / path
        return path


Loader = Callable[[LibrarySource, LoaderContext], Any]


class CommandEngine:
    """Engine backed by a local executable."""

    def __init__(self, executable: str, *, name: str | None = None) -> None:
        self.executable = executable
        self.name = name or Path(executable).name

    def __repr__(self) -> str:
        return f"CommandEngine({self.executable!r})"

    def is_usable(self) -> bool:
        return Path(self.executable).is_file() and os.access(self.executable, os.X_OK)

    async def run(
        self,
        args: Sequence[str],
        *,
        stdin: str | None = None,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> str:
        """Execute the command and return its standard output.

        Spawn failures and timeouts raise :class:`TransportError`; a non-zero
        exit status raises :class:`ContentError` carrying the tool's message.
        """
        command = [self.executable, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as exc:
            raise TransportError(f"Failed to execute {self.name}: {exc}") from exc

        data = stdin.encode("utf-8") if stdin is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(data), timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise TransportError(f"{self.name} timed out after {timeout}s") from exc

        output = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or output.strip()
            message = f"{self.name} exited with status {process.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise ContentError(message)
        return output


class KrokiClient:
    """Minimal client for a Kroki diagram rendering service."""

    def __init__(self, base_url: str, *, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"KrokiClient({self.base_url!r})"

    def check_health(self) -> bool:
        """Return True when the service answers its health endpoint."""
        http.request("GET", f"{self.base_url}/health", timeout=self.timeout)
        return True

    def render(
        self,
        diagram_type: str,
        source: str,
        output_format: str = "svg",
        *,
        options: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Render ``source`` and return the service's textual output.

        ``options`` are forwarded as ``Kroki-Diagram-Options-*`` headers.
        """
        url = f"{self.base_url}/{diagram_type}/{output_format}"
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        for key, value in (options or {}).items():
            headers[f"Kroki-Diagram-Options-{key}"] = value
        response = http.request(
            "POST",
            url,
            data=source.encode("utf-8"),
            headers=headers,
            timeout=timeout or self.timeout,
        )
        return response.text


def resolve_executable(name: str, hints: Sequence[Path] = ()) -> str | None:
    """Return an executable path found on ``PATH`` or among ``hints``."""
    candidate = Path(name).expanduser()
    if candidate.is_absolute() or os.sep in name:
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
        return None
    resolved = shutil.which(name)
    if resolved:
        return resolved
    for hint in (*hints, *CLI_HINT_PATHS.get(name, ())):
        if hint.is_file() and os.access(hint, os.X_OK):
            logger.info("Found '%s' at '%s'; add its directory to PATH.", name, hint)
            return str(hint)
    return None


def load_module(source: LibrarySource, context: LoaderContext) -> ModuleType:
    """Import a module by dotted name."""
    return importlib.import_module(source.locator)


def _module_name(path: Path) -> str:
    stem = re.sub(r"\W", "_", path.stem)
    digest = sha256(str(path).encode("utf-8")).hexdigest()[:8]
    return f"markdd_engine_{stem}_{digest}"


def load_file(source: LibrarySource, context: LoaderContext) -> ModuleType:
    """Load a Python module from a file path."""
    return _load_path(context.resolve_path(source.locator))


def _load_path(path: Path) -> ModuleType:
    if not path.is_file():
        raise EngineUnavailableError(path.stem, f"'{path}' does not exist")
    name = _module_name(path)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise EngineUnavailableError(path.stem, f"'{path}' is not a Python module")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


def load_executable(source: LibrarySource, context: LoaderContext) -> CommandEngine:
    """Locate an executable and wrap it in a :class:`CommandEngine`."""
    locator = source.locator
    if context.engines_dir is not None and not Path(locator).is_absolute():
        local = context.engines_dir / locator
        if local.is_file() and os.access(local, os.X_OK):
            return CommandEngine(str(local), name=Path(locator).name)
    resolved = resolve_executable(locator)
    if resolved is None:
        raise EngineUnavailableError(locator, "executable not found")
    return CommandEngine(resolved, name=Path(locator).name)


def _download_target(url: str, context: LoaderContext) -> Path:
    filename = Path(urlparse(url).path).name or "engine.py"
    digest = sha256(url.encode("utf-8")).hexdigest()[:16]
    return user_paths().download_dir(context.cache_namespace) / f"{digest}-{filename}"


def _verify_integrity(payload: bytes, expected: str, url: str) -> None:
    algorithm, _, value = expected.partition("-")
    if not value:
        algorithm, value = "sha256", expected
    if algorithm.lower() != "sha256":
        raise ContentError(f"Unsupported integrity algorithm '{algorithm}' for '{url}'")
    actual = sha256(payload).hexdigest()
    if actual.lower() != value.lower():
        raise ContentError(f"Integrity mismatch for '{url}': expected {value}, got {actual}")


def load_remote_module(source: LibrarySource, context: LoaderContext) -> ModuleType:
    """Download a Python module into the user cache and load it.

    Remote code is only executed when the source pins its content with an
    ``integrity`` hash.
    """
    url = source.locator
    if not source.integrity:
        raise EngineUnavailableError(url, "remote module sources require an integrity hash")
    target = _download_target(url, context)
    if target.exists():
        cached = target.read_bytes()
        try:
            _verify_integrity(cached, source.integrity, url)
        except ContentError:
            logger.debug("Discarding cached engine '%s' after integrity mismatch", target)
        else:
            return _load_path(target)

    payload = http.get_bytes(url, timeout=context.remote_timeout)
    _verify_integrity(payload, source.integrity, url)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_bytes(payload)
    tmp.replace(target)
    return _load_path(target)


def load_service(source: LibrarySource, context: LoaderContext) -> KrokiClient:
    """Check a rendering service is up and return a client for it."""
    client = KrokiClient(source.locator, timeout=context.remote_timeout)
    client.check_health()
    return client


class LoaderRegistry:
    """Registry storing source loaders."""

    def __init__(self) -> None:
        self._loaders: dict[str, Loader] = {}

    def register(self, name: str, loader: Loader) -> None:
        """Register a loader under a unique name."""
        self._loaders[name] = loader

    def get(self, name: str) -> Loader:
        """Return a registered loader or raise an acquisition error."""
        try:
            return self._loaders[name]
        except KeyError as exc:
            raise EngineUnavailableError(name, f"no loader registered for '{name}'") from exc

    def is_registered(self, name: str) -> bool:
        return name in self._loaders

    def copy(self) -> LoaderRegistry:
        clone = LoaderRegistry()
        clone._loaders.update(self._loaders)
        return clone


def default_loader_name(source: LibrarySource) -> str:
    """Return the loader used for ``source`` when none is declared."""
    if source.loader:
        return source.loader
    locator = source.locator
    if locator.startswith(("http://", "https://")):
        return "remote-module" if locator.endswith(".py") else "service"
    if locator.endswith(".py"):
        return "file"
    if source.kind is SourceKind.DIRECT_LOAD and os.sep in locator:
        return "executable"
    return "module"


loaders = LoaderRegistry()

# Built-in loaders
loaders.register("module", load_module)
loaders.register("file", load_file)
loaders.register("executable", load_executable)
loaders.register("remote-module", load_remote_module)
loaders.register("service", load_service)


def register_loader(name: str, loader: Loader) -> None:
    """Expose a helper to register external loaders."""
    loaders.register(name, loader)


__all__ = [
    "CLI_HINT_PATHS",
    "CommandEngine",
    "KrokiClient",
    "Loader",
    "LoaderContext",
    "LoaderRegistry",
    "default_loader_name",
    "load_executable",
    "load_file",
    "load_module",
    "load_remote_module",
    "load_service",
    "loaders",
    "register_loader",
    "resolve_executable",
]
