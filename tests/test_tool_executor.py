"""
Basic sanity tests for the tool registry and dispatcher.

Run with:
$ pytest -q
"""

import pytest

from agentshell.agent.tool_executor import (
    DuplicateToolCall,
    ToolDispatcher,
    ToolExecutionError,
    ToolNotFound,
    ToolRegistryBuilder,
    spec_from_function,
)


def _build_dispatcher(calls: list) -> ToolDispatcher:
    builder = ToolRegistryBuilder()

    # This is a stub tool for testing purposes.
    @builder.tool("add")
    def _add(a: int, b: int) -> int:
        """Return the sum of two integers (used only for tests)."""
        calls.append(("add", a, b))
        return a + b

    @builder.tool("slow_echo", description="Echo asynchronously")
    async def _slow_echo(text: str) -> dict:
        calls.append(("slow_echo", text))
        return {"success": True, "text": text}

    @builder.tool("boom")
    def _boom() -> None:
        raise RuntimeError("kaboom")

    return ToolDispatcher(builder.build())


@pytest.mark.asyncio
async def test_dispatch_success() -> None:
    """Dispatcher should return the handler's value when the tool is valid."""
    dispatcher = _build_dispatcher([])
    assert await dispatcher.dispatch("add", {"a": 2, "b": 3}) == 5


@pytest.mark.asyncio
async def test_dispatch_awaits_async_handlers() -> None:
    """Coroutine handlers are awaited transparently."""
    dispatcher = _build_dispatcher([])
    result = await dispatcher.dispatch("slow_echo", {"text": "hi"})
    assert result == {"success": True, "text": "hi"}


@pytest.mark.asyncio
async def test_dispatch_missing_tool_invokes_nothing() -> None:
    """Dispatcher should raise *ToolNotFound* for an unknown tool and call no handler."""
    calls: list = []
    dispatcher = _build_dispatcher(calls)

    with pytest.raises(ToolNotFound) as excinfo:
        await dispatcher.dispatch("not_a_tool", {})

    assert "not_a_tool" in str(excinfo.value)
    assert excinfo.value.tool_name == "not_a_tool"
    assert calls == []


@pytest.mark.asyncio
async def test_dispatch_bad_args() -> None:
    """Dispatcher should raise *ToolExecutionError* for wrong arguments."""
    dispatcher = _build_dispatcher([])

    with pytest.raises(ToolExecutionError) as excinfo:
        await dispatcher.dispatch("add", {"a": 2})  # missing 'b'

    assert "Invalid arguments" in str(excinfo.value)
    assert isinstance(excinfo.value.cause, TypeError)


@pytest.mark.asyncio
async def test_dispatch_wraps_handler_errors() -> None:
    """Any handler exception surfaces as *ToolExecutionError* with the cause attached."""
    dispatcher = _build_dispatcher([])

    with pytest.raises(ToolExecutionError) as excinfo:
        await dispatcher.dispatch("boom")

    assert excinfo.value.tool_name == "boom"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_dispatch_rejects_reused_call_id() -> None:
    """A call id runs its handler at most once."""
    calls: list = []
    dispatcher = _build_dispatcher(calls)

    await dispatcher.dispatch("add", {"a": 1, "b": 1}, call_id="call_1")
    with pytest.raises(DuplicateToolCall):
        await dispatcher.dispatch("add", {"a": 1, "b": 1}, call_id="call_1")

    assert calls == [("add", 1, 1)]


def test_builder_rejects_duplicate_names() -> None:
    """Registering the same name twice is a programming error."""
    builder = ToolRegistryBuilder()
    builder.register("noop", lambda: None)

    with pytest.raises(ValueError):
        builder.register("noop", lambda: None)


def test_builder_rejects_non_callables() -> None:
    builder = ToolRegistryBuilder()
    with pytest.raises(TypeError):
        builder.register("bad", "not callable")  # type: ignore[arg-type]


def test_registry_is_read_only() -> None:
    """The built registry is a snapshot; later builder changes do not leak in."""
    builder = ToolRegistryBuilder()
    builder.register("first", lambda: 1)
    registry = builder.build()
    builder.register("second", lambda: 2)

    assert list(registry) == ["first"]
    with pytest.raises(TypeError):
        registry["third"] = lambda: 3  # type: ignore[index]


def test_spec_from_function_uses_signature_and_docstring() -> None:
    def read(path: str, limit: int = 10, verbose: bool = False) -> dict:
        """Read a file.

        Longer description that is not used as the summary.
        """
        return {}

    spec = spec_from_function("read", read)

    assert spec.name == "read"
    assert spec.description == "Read a file."
    assert spec.parameters["required"] == ["path"]
    assert spec.parameters["properties"] == {
        "path": {"type": "string"},
        "limit": {"type": "integer"},
        "verbose": {"type": "boolean"},
    }


def test_spec_renders_openai_function_format() -> None:
    builder = ToolRegistryBuilder()
    builder.register("noop", lambda: None)
    spec = builder.build().spec("noop")

    rendered = spec.to_openai()

    assert rendered["type"] == "function"
    assert rendered["function"]["name"] == "noop"
    assert rendered["function"]["parameters"]["type"] == "object"


@pytest.mark.asyncio
async def test_new_batch_forgets_previous_call_ids() -> None:
    """Ids only need to be unique within one batch."""
    calls: list = []
    dispatcher = _build_dispatcher(calls)

    await dispatcher.dispatch("add", {"a": 1, "b": 1}, call_id="call_1")
    dispatcher.new_batch()
    await dispatcher.dispatch("add", {"a": 2, "b": 2}, call_id="call_1")

    assert calls == [("add", 1, 1), ("add", 2, 2)]
    assert len(dispatcher._dispatched) == 1
