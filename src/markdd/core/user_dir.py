"""Where markdd looks for local engine files and keeps downloaded engines.

``MARKDD_HOME`` (default ``~/.markdd``) holds engine files dropped in by the
user under ``engines/``. Remote modules are downloaded into the cache root,
chosen from the first of:

* ``MARKDD_CACHE_DIR``
* ``$XDG_CACHE_HOME/markdd``
* ``<home>/cache`` when the home was relocated
* ``~/.cache/markdd``
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import logging
import os
from pathlib import Path


__all__ = [
    "DOWNLOADS_NAMESPACE",
    "UserPaths",
    "resolve_user_paths",
    "use_user_paths",
    "user_paths",
]

logger = logging.getLogger(__name__)

DOWNLOADS_NAMESPACE = "downloads"

_override: UserPaths | None = None


@dataclass(frozen=True, slots=True)
class UserPaths:
    home: Path
    cache: Path

    @property
    def engines_dir(self) -> Path:
        """Directory searched for relative direct-load engine locators."""
        return self.home / "engines"

    def download_dir(self, namespace: str = DOWNLOADS_NAMESPACE) -> Path:
        target = self.cache / namespace
        target.mkdir(parents=True, exist_ok=True)
        return target

    def cached_downloads(self, namespace: str = DOWNLOADS_NAMESPACE) -> list[Path]:
        folder = self.cache / namespace
        if not folder.is_dir():
            return []
        return sorted(path for path in folder.iterdir() if path.is_file())

    def clear_downloads(self, namespace: str = DOWNLOADS_NAMESPACE) -> list[Path]:
        """Delete downloaded engine modules and return the removed files."""
        removed = self.cached_downloads(namespace)
        for path in removed:
            path.unlink(missing_ok=True)
        logger.debug("Removed %d cached download(s) from %s", len(removed), self.cache)
        return removed


def resolve_user_paths(
    home: str | Path | None = None,
    cache: str | Path | None = None,
) -> UserPaths:
    """Resolve the home and cache roots from arguments and the environment."""
    explicit_home = home or os.environ.get("MARKDD_HOME")
    home_path = Path(explicit_home).expanduser() if explicit_home else Path.home() / ".markdd"

    explicit_cache = cache or os.environ.get("MARKDD_CACHE_DIR")
    xdg_cache = os.environ.get("XDG_CACHE_HOME")
    if explicit_cache:
        cache_path = Path(explicit_cache).expanduser()
    elif xdg_cache:
        cache_path = Path(xdg_cache).expanduser() / "markdd"
    elif explicit_home:
        cache_path = home_path / "cache"
    else:
        cache_path = Path.home() / ".cache" / "markdd"
    return UserPaths(home=home_path, cache=cache_path)


def user_paths() -> UserPaths:
    """Return the active paths, re-reading the environment unless overridden."""
    if _override is not None:
        return _override
    return resolve_user_paths()


@contextmanager
def use_user_paths(
    home: str | Path | None = None,
    cache: str | Path | None = None,
) -> Iterator[UserPaths]:
    """Pin the active paths for the duration of the block."""
    global _override
    previous = _override
    _override = resolve_user_paths(home, cache)
    try:
        yield _override
    finally:
        _override = previous
