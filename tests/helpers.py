"""Test doubles shared across modules."""

from typing import (
    List,
    Sequence,
)

from agentshell.config import Settings
from agentshell.core.schema import (
    ChatResponse,
    Message,
    ToolCall,
    ToolSpec,
    Usage,
)
from agentshell.llm.transport import BaseTransport


class ScriptedTransport(BaseTransport):
    """Replays queued responses (or raises queued exceptions) and records every request."""

    name = "scripted"

    def __init__(self, settings: Settings, responses: Sequence[ChatResponse | Exception]):
        super().__init__(settings)
        self.responses = list(responses)
        self.calls: List[List[Message]] = []
        self.tools_seen: List[List[ToolSpec]] = []

    async def chat(
        self, messages: Sequence[Message], tools: Sequence[ToolSpec] = ()
    ) -> ChatResponse:
        self.calls.append(list(messages))
        self.tools_seen.append(list(tools))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def reply(content: str = "", *calls: ToolCall) -> ChatResponse:
    """Shorthand for a scripted model response."""
    return ChatResponse(
        content=content,
        tool_calls=list(calls),
        usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )
