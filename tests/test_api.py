"""Tests for the HTTP API (FastAPI ``TestClient``)."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from agentshell.agent.agent import Agent
from agentshell.api.app import (
    create_app,
    touched_files,
)
from agentshell.config import Settings
from agentshell.core.schema import (
    AgentResponse,
    ToolResult,
)
from agentshell.llm.transport import TransportError
from tests.helpers import ScriptedTransport


@pytest.fixture
def client(settings: Settings) -> TestClient:
    return TestClient(create_app(settings))


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_list_sessions(client: TestClient) -> None:
    created = client.post("/sessions", json={"metadata": {"client": "tests"}})
    assert created.status_code == 200
    session_id = created.json()["session_id"]

    assert client.get("/sessions").json() == [session_id]


def test_agent_turn_creates_session_and_records_history(client: TestClient) -> None:
    resp = client.post("/agent", json={"message": "generate a palindrome checker in javascript"})

    assert resp.status_code == 200
    body = resp.json()
    assert [t["tool_name"] for t in body["tools_used"]] == ["generate_code"]
    assert body["tools_used"][0]["payload"]["success"] is True
    assert body["reply"]
    assert body["tokens"]["total_tokens"] == 150

    history = client.get(f"/sessions/{body['session_id']}/history").json()
    assert [entry["role"] for entry in history] == ["user", "assistant", "tool", "assistant"]
    assert history[1]["tool_calls"][0]["name"] == "generate_code"


def test_intelligent_turn_attaches_files_as_resources(
    client: TestClient, settings: Settings
) -> None:
    Path(settings.WORKING_DIR, "example.js").write_text("var a = 1;\n", encoding="utf-8")
    session_id = client.post("/sessions").json()["session_id"]

    resp = client.post(
        "/agent",
        json={"message": "Read file example.js", "session_id": session_id, "intelligent": True},
    )

    assert resp.status_code == 200
    assert resp.json()["plan"] == {"intent": "read", "steps": 1}
    resources = client.get(f"/sessions/{session_id}/resources").json()
    assert [(r["type"], r["uri"], r["tool"]) for r in resources] == [
        ("file", "example.js", "read_file")
    ]


def test_unknown_session_is_404(client: TestClient) -> None:
    assert client.post("/agent", json={"message": "hi", "session_id": "nope"}).status_code == 404
    assert client.get("/sessions/nope/history").status_code == 404
    assert client.get("/sessions/nope/resources").status_code == 404


def test_blank_message_is_400(client: TestClient) -> None:
    resp = client.post("/agent", json={"message": "   "})
    assert resp.status_code == 400
    assert "empty" in resp.json()["detail"]


def test_transport_failure_is_502(settings: Settings) -> None:
    def failing_agent(cfg: Settings) -> Agent:
        transport = ScriptedTransport(cfg, [TransportError("upstream 500", status_code=500)])
        return Agent(cfg, transport=transport)

    client = TestClient(create_app(settings, agent_factory=failing_agent))

    resp = client.post("/agent", json={"message": "hello"})

    assert resp.status_code == 502
    assert resp.json()["detail"] == "upstream 500"


def test_list_tools(client: TestClient) -> None:
    tools = client.get("/tools").json()
    names = [tool["name"] for tool in tools]
    assert "read_file" in names and "generate_code" in names
    assert tools[0]["parameters"]["type"] == "object"


def test_list_tools_builds_specs_once(settings: Settings) -> None:
    built = []

    def counting_agent(cfg: Settings) -> Agent:
        built.append(cfg)
        return Agent(cfg)

    client = TestClient(create_app(settings, agent_factory=counting_agent))

    first = client.get("/tools").json()
    second = client.get("/tools").json()

    assert first == second
    assert len(built) == 1


def test_touched_files_ignores_failures() -> None:
    response = AgentResponse(
        message="",
        tools_used=[
            ToolResult(tool_name="write_file", call_id="1", success=True, payload={"path": "a"}),
            ToolResult(tool_name="read_file", call_id="2", success=False, error="boom"),
            ToolResult(
                tool_name="read_file",
                call_id="3",
                success=True,
                payload={"success": False, "path": "missing"},
            ),
        ],
        results=[
            {"step": "move_file", "result": {"success": True, "destination": "b"}, "error": None}
        ],
    )

    assert touched_files(response) == [
        {"tool": "write_file", "path": "a"},
        {"tool": "move_file", "path": "b"},
    ]
