"""
Schema definitions for transport <-> agent <-> tool messages.

These data models serve as the contract between the LLM transport, the orchestration loop, the
planner and individual tools.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

import uuid
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


def new_call_id() -> str:
    """Return a fresh tool-call id for providers that do not supply one."""
    return f"call_{uuid.uuid4().hex[:12]}"


class Role(str, Enum):
    """Author of a conversation entry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(default_factory=new_call_id, description="Provider or generated call id")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments for the tool"
    )


class Message(BaseModel):
    """One entry of the conversation log."""

    role: Role
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ToolSpec(BaseModel):
    """Declarative description of a tool, exposed to the model."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_openai(self) -> Dict[str, Any]:
        """Render in the ``{"type": "function", "function": {...}}`` wire format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class Usage(BaseModel):
    """Token accounting reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    """Normalized response of every transport backend."""

    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)


class ToolResult(BaseModel):
    """Outcome of exactly one dispatched ToolCall."""

    tool_name: str
    call_id: str
    success: bool
    payload: Any = None
    error: Optional[str] = None


class PlanSummary(BaseModel):
    """Short description of the plan a Planner turn executed."""

    intent: str
    steps: int


class AgentResponse(BaseModel):
    """The single shape returned by one agent turn (loop or planner)."""

    message: str
    tools_used: List[ToolResult] = Field(default_factory=list)
    tokens: Optional[Usage] = None
    plan: Optional[PlanSummary] = None
    results: List[Dict[str, Any]] = Field(default_factory=list)
    unhandled_tool_calls: List[ToolCall] = Field(default_factory=list)
