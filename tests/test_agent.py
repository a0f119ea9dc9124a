"""Tests for the Agent facade."""

import pytest

from agentshell.agent.agent import (
    Agent,
    CodingTask,
)
from agentshell.core.schema import Role
from agentshell.llm.transport import MockTransport
from tests.helpers import reply


@pytest.mark.asyncio
async def test_default_agent_uses_configured_transport(settings) -> None:
    agent = Agent(settings)

    response = await agent.chat("generate a palindrome checker in javascript")

    assert isinstance(agent.transport, MockTransport)
    assert [r.tool_name for r in response.tools_used] == ["generate_code"]
    assert response.message == "I ran 1 tool call(s): generate_code (ok)."
    assert len(agent.store) == 4


@pytest.mark.asyncio
async def test_intelligent_mode_routes_through_the_planner(settings, scripted, tmp_path) -> None:
    (tmp_path / "example.js").write_text("const x = 1;\n", encoding="utf-8")
    transport = scripted()
    agent = Agent(settings, transport=transport)

    response = await agent.chat("Read file example.js", intelligent=True)

    assert transport.calls == []
    assert response.plan.intent == "read"
    assert response.message.startswith("✅ Step 1 (read_file) completed: File: example.js")
    assert [m.role for m in agent.store] == [Role.USER, Role.ASSISTANT]


@pytest.mark.asyncio
async def test_intelligent_mode_default_comes_from_settings(settings, scripted) -> None:
    settings.INTELLIGENT_MODE = True
    agent = Agent(settings, transport=scripted(reply("unused")))

    response = await agent.chat("list everything")

    assert response.plan is not None


@pytest.mark.parametrize(
    "task, expected",
    [
        (
            CodingTask(type="implement", description="Login", files=["a.js"], requirements=["r1"]),
            "Implement the following feature:\n\nLogin\n\nFiles to modify: a.js\n"
            "Requirements:\n- r1\n",
        ),
        (
            CodingTask(type="fix", description="Crash", error="TypeError", file="b.js"),
            "Fix the following issue:\n\nCrash\n\nError: TypeError\n\nFile: b.js\n",
        ),
        (
            CodingTask(type="refactor", description="Cleanup", file="c.js"),
            "Refactor the following:\n\nCleanup\n\nFile: c.js\n",
        ),
        (CodingTask(description="Anything"), "Anything"),
    ],
)
def test_build_task_prompt(task: CodingTask, expected: str) -> None:
    assert Agent.build_task_prompt(task) == expected


@pytest.mark.asyncio
async def test_execute_task_accepts_dicts(settings, scripted) -> None:
    transport = scripted(reply("done"))
    agent = Agent(settings, transport=transport)

    await agent.execute_task({"type": "refactor", "description": "Cleanup"})

    assert transport.calls[0][-1].content.startswith("Refactor the following:")


@pytest.mark.asyncio
async def test_export_and_import_conversation(settings, scripted) -> None:
    agent = Agent(settings, transport=scripted(reply("first"), reply("second")))
    agent.set_context("language", "python")
    await agent.chat("hello")

    dump = agent.export_conversation()
    other = Agent(settings, transport=scripted(reply("after import")))
    other.import_conversation(dump)
    await other.chat("again")

    assert other.get_context("language") == "python"
    assert [m.content for m in other.store] == ["hello", "first", "again", "after import"]
    assert other.loop.store is other.store

    agent.clear_history()
    assert len(agent.store) == 0
    assert agent.get_context() == {"language": "python"}
