"""Tests for the conversation store."""

import pytest

from agentshell.agent.conversation import ConversationStore
from agentshell.core.schema import (
    Message,
    Role,
    ToolCall,
)


def test_messages_returns_a_copy() -> None:
    store = ConversationStore()
    store.add(Role.USER, "hi")

    snapshot = store.messages
    snapshot.append(Message(role=Role.ASSISTANT, content="injected"))

    assert len(store) == 1


def test_tool_message_must_follow_tool_calls() -> None:
    store = ConversationStore()
    store.add(Role.USER, "hi")

    with pytest.raises(ValueError):
        store.add(Role.TOOL, "[]")

    store.add(Role.ASSISTANT, "", tool_calls=[ToolCall(id="c1", name="read_file")])
    store.add(Role.TOOL, "[]")
    assert [m.role for m in store] == [Role.USER, Role.ASSISTANT, Role.TOOL]


def test_export_round_trip_and_clear() -> None:
    store = ConversationStore()
    store.add(Role.USER, "read a.js")
    store.add(Role.ASSISTANT, "", tool_calls=[ToolCall(id="c1", name="read_file")])
    store.add(Role.TOOL, '[{"call_id": "c1"}]')

    exported = store.export()
    assert exported[0]["role"] == "user"
    assert isinstance(exported[0]["timestamp"], str)

    restored = ConversationStore.from_export(exported)
    assert restored.messages == store.messages

    store.clear()
    assert len(store) == 0
    assert len(restored) == 3
