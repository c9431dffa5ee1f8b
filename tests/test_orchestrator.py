from __future__ import annotations

import asyncio
from typing import Any

from markdd.adapters import AdapterRegistry
from markdd.core.diagnostics import RecordingEmitter
from markdd.core.exceptions import FailureKind
from markdd.core.rendering.compiler import PlaceholderCompiler
from markdd.core.rendering.models import BlockFailure, PlaceholderStatus
from markdd.core.rendering.orchestrator import PostProcessor, RenderSession


class StaticAdapter:
    """Adapter returning canned results in order, repeating the last one."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, str | None]] = []

    async def render(self, payload: str, *, variant: str | None = None) -> Any:
        self.calls.append((payload, variant))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class GatedAdapter:
    """Adapter holding ``slow`` payloads until the gate opens."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()

    async def render(self, payload: str, *, variant: str | None = None) -> str:
        if payload == "slow":
            await self.gate.wait()
        return f"<svg><text>{payload}</text></svg>"


def _registry(**adapters: Any) -> AdapterRegistry:
    registry = AdapterRegistry()
    for notation, adapter in adapters.items():
        registry.register(notation, adapter)
    return registry


def _compile(text: str):
    return PlaceholderCompiler(highlight=False).compile(text)


def test_document_without_placeholders_is_untouched() -> None:
    document = _compile("# Plain\n\nNothing deferred here.\n")
    processor = PostProcessor(_registry())

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    assert result is document.markup


def test_failures_are_isolated_per_block() -> None:
    document = _compile(
        "```dot\ndigraph { a -> b }\n```\n\nMiddle.\n\n```abc\nK:C\nCDEF\n```\n"
    )
    emitter = RecordingEmitter()
    processor = PostProcessor(
        _registry(
            graphviz=StaticAdapter("<svg><g>graph</g></svg>"),
            music=StaticAdapter(RuntimeError("engraver exploded")),
        ),
        emitter=emitter,
    )

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    graph, tune = document.placeholders
    assert graph.status is PlaceholderStatus.RENDERED
    assert tune.status is PlaceholderStatus.ERROR
    assert isinstance(tune.result, BlockFailure)
    assert tune.result.message == "engraver exploded"
    assert '<div class="deferred-rendered deferred-graphviz"' in result
    assert "<svg><g>graph</g></svg>" in result
    assert '<div class="deferred-error" data-notation="music"' in result
    assert "K:C\nCDEF" in result
    assert "<p>Middle.</p>" in result
    assert graph.marker not in result
    assert tune.marker not in result
    assert [event["id"] for event in emitter.named("placeholder_rendered")] == ["ph-1"]
    assert emitter.named("placeholder_failed")[0]["kind"] == "content"


def test_rendered_output_is_sanitised() -> None:
    document = _compile("```dot\ngraph {}\n```\n")
    hostile = '<svg onload="steal()"><script>alert(1)</script><a href="javascript:x">k</a></svg>'
    processor = PostProcessor(_registry(graphviz=StaticAdapter(hostile)))

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    assert "<script" not in result
    assert "onload" not in result
    assert "javascript:" not in result
    assert "<svg>" in result


def test_api_shape_failures_are_retried_once() -> None:
    document = _compile("```dot\ngraph {}\n```\n")
    shape = BlockFailure("render missing", "graph {}", FailureKind.API_SHAPE)
    adapter = StaticAdapter(shape, "<svg>second try</svg>")
    processor = PostProcessor(_registry(graphviz=adapter))

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    assert len(adapter.calls) == 2
    assert "<svg>second try</svg>" in result


def test_api_shape_failure_is_not_retried_twice() -> None:
    document = _compile("```dot\ngraph {}\n```\n")
    adapter = StaticAdapter(BlockFailure("render missing", "graph {}", FailureKind.API_SHAPE))
    processor = PostProcessor(_registry(graphviz=adapter))

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    assert len(adapter.calls) == 2
    assert 'data-failure="api-shape"' in result


def test_content_failures_are_not_retried() -> None:
    document = _compile("```dot\ngraph {}\n```\n")
    adapter = StaticAdapter(BlockFailure("syntax error", "graph {}", FailureKind.CONTENT))
    processor = PostProcessor(_registry(graphviz=adapter))

    asyncio.run(processor.process(document.markup, document.placeholders))

    assert len(adapter.calls) == 1


def test_missing_adapter_yields_error_block() -> None:
    document = _compile("```wavedrom\n{signal: []}\n```\n")
    processor = PostProcessor(_registry())

    result = asyncio.run(processor.process(document.markup, document.placeholders))

    assert "no renderer for timing diagram" in result
    assert document.placeholders[0].status is PlaceholderStatus.ERROR


def test_progress_is_reported_per_block() -> None:
    document = _compile("```dot\na\n```\n\n```dot\nb\n```\n")
    snapshots: list[str] = []
    processor = PostProcessor(_registry(graphviz=StaticAdapter("<svg/>")))

    result = asyncio.run(
        processor.process(document.markup, document.placeholders, on_progress=snapshots.append)
    )

    assert len(snapshots) == 2
    assert snapshots[-1] == result
    assert sum(marker.marker in snapshots[0] for marker in document.placeholders) == 1


def test_placeholders_of_stale_pass_are_skipped() -> None:
    document = _compile("```dot\na\n```\n")
    adapter = StaticAdapter("<svg/>")
    processor = PostProcessor(_registry(graphviz=adapter))

    result = asyncio.run(
        processor.process(document.markup, document.placeholders, is_current=lambda: False)
    )

    assert result == document.markup
    assert adapter.calls == []
    assert document.placeholders[0].status is PlaceholderStatus.PENDING


def test_superseded_pass_cannot_overwrite_newer_output() -> None:
    adapter = GatedAdapter()
    emitter = RecordingEmitter()
    updates: list[str] = []
    session = RenderSession(
        PlaceholderCompiler(highlight=False),
        PostProcessor(_registry(graphviz=adapter)),
        emitter=emitter,
        on_update=updates.append,
    )

    async def scenario() -> tuple[Any, Any]:
        first_task = asyncio.create_task(session.process("```dot\nslow\n```\n"))
        for _ in range(5):
            await asyncio.sleep(0)
        second = await session.process("```dot\nfast\n```\n")
        adapter.gate.set()
        first = await first_task
        return first, second

    first, second = asyncio.run(scenario())

    assert first.superseded
    assert first.completed
    assert "<text>slow</text>" in (first.output or "")
    assert not second.superseded
    assert session.latest is second
    assert session.markup == second.output
    assert "<text>fast</text>" in session.markup
    assert all("<text>slow</text>" not in update for update in updates)
    assert emitter.named("pass_superseded") == [{"id": 1, "successor": 2}]
