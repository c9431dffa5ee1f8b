from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from markdd.core.config import ResolutionConfig
from markdd.core.diagnostics import RecordingEmitter
from markdd.core.libraries import (
    EngineHandle,
    LibraryDescriptor,
    LibraryResolver,
    UnavailableEngine,
)
from markdd.core.libraries.capabilities import (
    CapabilityInterceptor,
    CapabilityShim,
    ensure_capabilities,
    install_exception_interceptor,
    is_standin,
    missing_capabilities,
    noop_standin,
    passthrough_standin,
    unwrap_engine,
)


MARKMAP_CAPABILITIES = {"transform": noop_standin, "build_item": passthrough_standin}


def test_passthrough_standin_never_calls_its_argument() -> None:
    standin = passthrough_standin("build_item")

    assert standin({"content": "root"}) == {"content": "root"}
    assert standin(None) == {}
    assert standin(standin) == {}
    assert is_standin(standin)
    assert standin.__name__ == "build_item"


def test_ensure_capabilities_is_idempotent() -> None:
    engine = SimpleNamespace(transform=lambda text: {"content": text})
    handle = EngineHandle("markmap", engine)

    patched = ensure_capabilities(handle, MARKMAP_CAPABILITIES)
    again = ensure_capabilities(patched, MARKMAP_CAPABILITIES)

    assert patched is not handle
    assert again is patched
    assert patched.patched == ("build_item",)
    assert isinstance(patched.engine, CapabilityShim)
    assert unwrap_engine(patched.engine) is engine
    assert patched.engine.transform("x") == {"content": "x"}


def test_ensure_capabilities_keeps_complete_and_unavailable_handles() -> None:
    engine = SimpleNamespace(transform=lambda text: text, build_item=lambda node: node)
    complete = EngineHandle("markmap", engine)
    missing = UnavailableEngine("markmap", "not installed")

    assert ensure_capabilities(complete, MARKMAP_CAPABILITIES) is complete
    assert ensure_capabilities(missing, MARKMAP_CAPABILITIES) is missing


def test_existing_implementations_are_never_replaced() -> None:
    engine = SimpleNamespace(transform="not callable", build_item=lambda node: "real")
    patched = ensure_capabilities(EngineHandle("markmap", engine), MARKMAP_CAPABILITIES)

    assert patched.patched == ("transform",)
    assert patched.engine.build_item(None) == "real"
    # Attributes present on the engine win over stand-ins.
    assert patched.engine.transform == "not callable"


def test_shim_forwards_writes_and_unknown_lookups() -> None:
    engine = SimpleNamespace()
    shim = CapabilityShim(engine, {"render": noop_standin("render")})

    shim.options = {"scale": 2}

    assert engine.options == {"scale": 2}
    assert shim.standin_names == ("render",)
    with pytest.raises(AttributeError):
        _ = shim.unknown


def test_missing_capabilities_tolerates_raising_getattr() -> None:
    class Hostile:
        def __getattr__(self, name: str) -> Any:
            raise RuntimeError(name)

    assert missing_capabilities(Hostile(), MARKMAP_CAPABILITIES) == ["transform", "build_item"]


def _markmap_resolver(
    engine: Any, tmp_path: Path, emitter: RecordingEmitter
) -> LibraryResolver:
    descriptor = LibraryDescriptor(
        "markmap", embedded_resolve=lambda: engine, capabilities=MARKMAP_CAPABILITIES
    )
    config = ResolutionConfig(poll_interval=0, engines_dir=tmp_path)
    return LibraryResolver([descriptor], config=config, emitter=emitter)


def test_handle_for_invocation_refreshes_lost_capability(tmp_path: Path) -> None:
    engine = SimpleNamespace(transform=lambda text: text, build_item=lambda node: node)
    emitter = RecordingEmitter()
    resolver = _markmap_resolver(engine, tmp_path, emitter)

    handle = asyncio.run(resolver.retry("markmap"))
    assert handle.patched == ()

    del engine.build_item
    refreshed = resolver.handle_for_invocation("markmap")

    assert refreshed.patched == ("build_item",)
    assert refreshed.engine.build_item({"content": "a"}) == {"content": "a"}
    assert resolver.peek("markmap") is refreshed
    assert emitter.named("capability_patched") == [
        {"name": "markmap", "capabilities": ["build_item"]}
    ]


def test_interceptor_suppresses_missing_capability_crash(tmp_path: Path) -> None:
    engine = SimpleNamespace(transform=lambda text: text, build_item=lambda node: node)
    emitter = RecordingEmitter()
    resolver = _markmap_resolver(engine, tmp_path, emitter)
    forwarded: list[dict[str, Any]] = []

    def crash() -> None:
        raise AttributeError("no attribute 'build_item'", name="build_item", obj=engine)

    def unrelated() -> None:
        raise ValueError("something else")

    async def scenario() -> Any:
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(lambda _loop, context: forwarded.append(context))
        interceptor = install_exception_interceptor(loop, resolver, emitter=emitter)
        await resolver.resolve("markmap")
        del engine.build_item
        loop.call_soon(crash)
        loop.call_soon(unrelated)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        return interceptor

    interceptor = asyncio.run(scenario())

    assert interceptor.recovered == [("markmap", "build_item")]
    assert emitter.named("capability_recovered") == [
        {"name": "markmap", "capability": "build_item"}
    ]
    refreshed = resolver.peek("markmap")
    assert refreshed is not None and refreshed.patched == ("build_item",)
    assert len(forwarded) == 1
    assert isinstance(forwarded[0]["exception"], ValueError)


def test_interceptor_ignores_attribute_errors_of_other_objects(tmp_path: Path) -> None:
    engine = SimpleNamespace(transform=lambda text: text, build_item=lambda node: node)
    resolver = _markmap_resolver(engine, tmp_path, RecordingEmitter())
    asyncio.run(resolver.retry("markmap"))

    interceptor = CapabilityInterceptor(resolver)
    stranger = SimpleNamespace()

    assert interceptor.match(AttributeError("x", name="build_item", obj=stranger)) is None
    assert interceptor.match(AttributeError("x", name="unlisted", obj=engine)) is None
    assert interceptor.match(KeyError("build_item")) is None
    assert interceptor.match(AttributeError("x", name="build_item", obj=engine)) == (
        "markmap",
        "build_item",
    )
