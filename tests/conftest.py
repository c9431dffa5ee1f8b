from __future__ import annotations

from collections.abc import Iterator
import logging
from pathlib import Path

import pytest

from markdd.core.user_dir import use_user_paths


@pytest.fixture(autouse=True)
def isolated_user_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    for variable in (
        "MARKDD_HOME",
        "MARKDD_CACHE_DIR",
        "MARKDD_POLL_ATTEMPTS",
        "MARKDD_POLL_INTERVAL",
        "MARKDD_ALLOW_REMOTE",
        "MARKDD_ENGINES_DIR",
        "MARKDD_PLANTUML_SERVER",
        "MARKDD_KROKI_SERVERS",
        "MARKDD_HTTP_USER_AGENT",
    ):
        monkeypatch.delenv(variable, raising=False)
    root = tmp_path / "markdd-home"
    with use_user_paths(root, root / "cache"):
        yield root


@pytest.fixture(autouse=True)
def restore_markdd_logger() -> Iterator[None]:
    logger = logging.getLogger("markdd")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
