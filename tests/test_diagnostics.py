from __future__ import annotations

import logging

import pytest

from markdd.core.diagnostics import (
    LoggingEmitter,
    NullEmitter,
    RecordingEmitter,
    ensure_emitter,
    format_event_message,
    record_event,
)
from markdd.core.exceptions import TransportError
from markdd.ui.cli.diagnostics import CliEmitter
from markdd.ui.cli.state import CLIState, set_cli_state


def test_null_emitter_is_noop(caplog: pytest.LogCaptureFixture) -> None:
    emitter = NullEmitter()
    with caplog.at_level(logging.WARNING):
        emitter.warning("nothing to see")
        emitter.error("still quiet")
    assert not caplog.records
    emitter.event("ignored", {"value": 1})
    assert emitter.debug_enabled is False


def test_logging_emitter_logs_messages(caplog: pytest.LogCaptureFixture) -> None:
    emitter = LoggingEmitter(debug_enabled=True)
    with caplog.at_level(logging.INFO, logger="markdd"):
        emitter.error("boom")
        emitter.event("library_resolved", {"name": "graphviz", "source": "embedded"})
    messages = [record.getMessage() for record in caplog.records]
    assert "boom" in messages
    assert "Engine ready: graphviz (embedded)" in messages
    assert emitter.debug_enabled is True


def test_recording_emitter_keeps_events() -> None:
    emitter = RecordingEmitter()

    record_event(emitter, "library_failed", {"name": "kroki"})
    record_event(emitter, "library_failed", {"name": "markmap"})
    emitter.warning("careful")

    assert [payload["name"] for payload in emitter.named("library_failed")] == [
        "kroki",
        "markmap",
    ]
    assert emitter.warnings == ["careful"]
    assert isinstance(ensure_emitter(None), NullEmitter)
    assert ensure_emitter(emitter) is emitter


@pytest.mark.parametrize(
    ("name", "payload", "expected"),
    [
        ("library_resolved", {"name": "kroki"}, "Engine ready: kroki (runtime)"),
        (
            "library_failed",
            {"name": "mermaid-cli", "reason": "no source succeeded"},
            "Engine unavailable: mermaid-cli: no source succeeded",
        ),
        (
            "capability_patched",
            {"name": "markmap", "capabilities": ["transform"]},
            "Installed stand-ins on markmap: transform",
        ),
        (
            "capability_recovered",
            {"name": "vl-convert", "capability": "vega_to_svg"},
            "Recovered missing 'vega_to_svg' on vl-convert",
        ),
        (
            "placeholder_failed",
            {"notation": "flowchart", "id": "mdd-3", "message": "timeout"},
            "flowchart block mdd-3 failed: timeout",
        ),
        ("something_else", {}, None),
    ],
)
def test_format_event_message(name: str, payload: dict[str, object], expected: str | None) -> None:
    assert format_event_message(name, payload) == expected


def test_cli_emitter_bridges_state(capsys: pytest.CaptureFixture[str]) -> None:
    state = set_cli_state(verbosity=1, debug=False)
    emitter = CliEmitter(state=state)

    emitter.warning("Heads up", exc=None)
    emitter.error("Boom", exc=TransportError("connection refused"))
    emitter.event("library_failed", {"name": "kroki"})
    emitter.event("custom", {"flag": True})

    captured = capsys.readouterr()
    combined_output = f"{captured.out}\n{captured.err}"
    assert "Heads up" in combined_output
    assert "Boom" in combined_output
    assert "connection refused" in combined_output
    assert "Engine unavailable: kroki" in combined_output
    assert state.unavailable_engines["kroki"] == ""
    assert emitter.debug_enabled is False


def test_cli_emitter_hides_info_when_quiet(capsys: pytest.CaptureFixture[str]) -> None:
    state = set_cli_state(verbosity=0, debug=True)
    emitter = CliEmitter(state=state)

    emitter.event("library_resolved", {"name": "graphviz"})

    captured = capsys.readouterr()
    assert "Engine ready" not in captured.err
    assert emitter.debug_enabled is True


def test_cli_state_tallies_engine_and_block_failures() -> None:
    state = CLIState()
    emitter = CliEmitter(state=state)

    emitter.event("library_failed", {"name": "mermaid-cli", "reason": "not on PATH"})
    emitter.event("library_failed", {"name": "kroki", "reason": "offline"})
    emitter.event("library_resolved", {"name": "kroki", "source": "remote"})
    emitter.event("placeholder_failed", {"id": "ph-1", "notation": "flowchart"})
    emitter.event("placeholder_failed", {"id": "ph-2", "notation": "flowchart"})

    assert state.unavailable_engines == {"mermaid-cli": "not on PATH"}
    assert state.failed_blocks == 2
