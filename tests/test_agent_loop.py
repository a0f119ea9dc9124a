"""Tests for the two-call orchestration loop."""

import json

import pytest

from agentshell.agent.agent_loop import (
    AgentLoop,
    LoopState,
    tool_message,
)
from agentshell.agent.conversation import ConversationStore
from agentshell.agent.tool_executor import ToolDispatcher
from agentshell.config import Settings
from agentshell.core.schema import (
    Role,
    ToolCall,
    ToolResult,
)
from agentshell.llm.transport import (
    MockTransport,
    TransportError,
)
from agentshell.tools import build_default_registry
from tests.helpers import reply


@pytest.mark.asyncio
async def test_plain_answer_uses_one_transport_call(scripted, echo_dispatcher) -> None:
    """Zero tool calls: exactly one transport call and the content comes back unchanged."""
    transport = scripted(reply("Hello there"))
    store = ConversationStore()
    loop = AgentLoop(transport, echo_dispatcher, store)

    response = await loop.run_turn("hi")

    assert response.message == "Hello there"
    assert response.tools_used == []
    assert len(transport.calls) == 1
    assert [m.role for m in store] == [Role.USER, Role.ASSISTANT]
    assert loop.state is LoopState.DONE


@pytest.mark.asyncio
async def test_tool_turn_grows_history_by_two(scripted, echo_dispatcher) -> None:
    """The second call sees the first call's history plus the assistant and tool messages."""
    call = ToolCall(id="call_a", name="echo", arguments={"text": "ping"})
    transport = scripted(reply("", call), reply("Echoed ping"))
    loop = AgentLoop(transport, echo_dispatcher, ConversationStore())

    response = await loop.run_turn("please echo ping")

    assert len(transport.calls) == 2
    first, second = transport.calls
    assert len(second) == len(first) + 2
    assert second[-2].role is Role.ASSISTANT
    assert second[-2].tool_calls[0].id == "call_a"
    assert second[-1].role is Role.TOOL

    assert response.message == "Echoed ping"
    assert len(response.tools_used) == 1
    assert response.tools_used[0].success is True
    assert response.tools_used[0].payload == {"success": True, "text": "ping"}


@pytest.mark.asyncio
async def test_tools_are_exposed_to_the_model(scripted, echo_dispatcher) -> None:
    transport = scripted(reply("ok"))
    await AgentLoop(transport, echo_dispatcher, ConversationStore()).run_turn("hi")

    assert [spec.name for spec in transport.tools_seen[0]] == ["echo", "explode", "soft_fail"]


@pytest.mark.asyncio
async def test_failing_tool_does_not_stop_the_batch(scripted, echo_dispatcher) -> None:
    """Unknown and raising tools become failed results; later calls still run."""
    calls = [
        ToolCall(id="c1", name="missing_tool"),
        ToolCall(id="c2", name="explode"),
        ToolCall(id="c3", name="soft_fail"),
        ToolCall(id="c4", name="echo", arguments={"text": "still here"}),
    ]
    transport = scripted(reply("", *calls), reply("done"))
    response = await AgentLoop(transport, echo_dispatcher, ConversationStore()).run_turn("go")

    results = response.tools_used
    assert [r.call_id for r in results] == ["c1", "c2", "c3", "c4"]
    assert [r.success for r in results] == [False, False, True, True]
    assert "not registered" in results[0].error
    assert "boom" in results[1].error
    # A domain failure is still a successful dispatch
    assert results[2].payload == {"success": False, "error": "nothing to do"}

    tool_entries = json.loads(transport.calls[1][-1].content)
    assert [entry["call_id"] for entry in tool_entries] == ["c1", "c2", "c3", "c4"]


@pytest.mark.asyncio
async def test_transport_failure_is_turn_fatal(scripted, echo_dispatcher) -> None:
    transport = scripted(TransportError("backend down", status_code=503))
    store = ConversationStore()

    with pytest.raises(TransportError):
        await AgentLoop(transport, echo_dispatcher, store).run_turn("hi")

    assert [m.role for m in store] == [Role.USER]


@pytest.mark.asyncio
async def test_second_round_tool_calls_are_reported_not_run(scripted, echo_dispatcher) -> None:
    first = ToolCall(id="c1", name="echo", arguments={"text": "one"})
    second = ToolCall(id="c2", name="echo", arguments={"text": "two"})
    transport = scripted(reply("", first), reply("need more", second))

    response = await AgentLoop(transport, echo_dispatcher, ConversationStore()).run_turn("go")

    assert len(transport.calls) == 2
    assert [r.call_id for r in response.tools_used] == ["c1"]
    assert [c.id for c in response.unhandled_tool_calls] == ["c2"]
    assert response.message == "need more"


@pytest.mark.asyncio
async def test_duplicate_id_in_one_batch_runs_once(scripted, echo_dispatcher) -> None:
    calls = [
        ToolCall(id="dup", name="echo", arguments={"text": "one"}),
        ToolCall(id="dup", name="echo", arguments={"text": "two"}),
    ]
    transport = scripted(reply("", *calls), reply("done"))

    response = await AgentLoop(transport, echo_dispatcher, ConversationStore()).run_turn("go")

    assert [r.success for r in response.tools_used] == [True, False]
    assert "already dispatched" in response.tools_used[1].error


@pytest.mark.asyncio
async def test_provider_may_reuse_call_id_in_a_later_turn(scripted, echo_dispatcher) -> None:
    """Some backends restart their id counter every response."""
    call = ToolCall(id="call_0", name="echo", arguments={"text": "again"})
    transport = scripted(reply("", call), reply("first"), reply("", call), reply("second"))
    loop = AgentLoop(transport, echo_dispatcher, ConversationStore())

    await loop.run_turn("echo again")
    response = await loop.run_turn("echo again")

    assert response.message == "second"
    assert response.tools_used[0].success is True
    assert response.tools_used[0].payload == {"success": True, "text": "again"}


def test_tool_message_aggregates_results_in_order() -> None:
    results = [
        ToolResult(tool_name="a", call_id="1", success=True, payload={"x": 1}),
        ToolResult(tool_name="b", call_id="2", success=False, error="bad"),
    ]
    message = tool_message(results)

    assert message.role is Role.TOOL
    decoded = json.loads(message.content)
    assert [d["tool_name"] for d in decoded] == ["a", "b"]
    assert decoded[1]["error"] == "bad"


@pytest.mark.asyncio
async def test_mock_transport_palindrome_end_to_end(settings: Settings) -> None:
    """The mock backend requests generate_code once and summarizes the result."""
    transport = MockTransport(settings)
    dispatcher = ToolDispatcher(build_default_registry(settings.WORKING_DIR))
    loop = AgentLoop(transport, dispatcher, ConversationStore())

    response = await loop.run_turn("generate a palindrome checker in javascript")

    assert len(response.tools_used) == 1
    used = response.tools_used[0]
    assert used.tool_name == "generate_code"
    assert used.payload["success"] is True
    assert used.payload["language"] == "javascript"
    assert "function" in used.payload["code"]
    assert response.message
    assert response.unhandled_tool_calls == []
    assert len(transport.calls) == 2
