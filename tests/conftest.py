"""Shared fixtures for the agentshell test-suite."""

from pathlib import Path
from typing import Callable

import pytest

from agentshell.agent.tool_executor import (
    ToolDispatcher,
    ToolRegistryBuilder,
)
from agentshell.config import Settings
from agentshell.core.schema import ChatResponse
from tests.helpers import ScriptedTransport


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Mock-provider settings rooted in a temporary working directory."""
    return Settings(
        LLM_PROVIDER="mock",
        WORKING_DIR=str(tmp_path),
        OUTPUT_DIR=str(tmp_path / "generated"),
        USER_NAME="tester",
        INTELLIGENT_MODE=False,
    )


@pytest.fixture
def scripted(settings: Settings) -> Callable[..., ScriptedTransport]:
    def _make(*responses: ChatResponse | Exception) -> ScriptedTransport:
        return ScriptedTransport(settings, responses)

    return _make


@pytest.fixture
def echo_dispatcher() -> ToolDispatcher:
    """Dispatcher with an ``echo`` tool, a failing ``explode`` tool and a ``soft_fail`` tool."""
    builder = ToolRegistryBuilder()

    @builder.tool("echo", description="Echo the input text back")
    def echo(text: str) -> dict:
        return {"success": True, "text": text}

    @builder.tool("explode", description="Always raises")
    def explode() -> dict:
        raise RuntimeError("boom")

    @builder.tool("soft_fail", description="Reports a domain failure")
    def soft_fail() -> dict:
        return {"success": False, "error": "nothing to do"}

    return ToolDispatcher(builder.build())
