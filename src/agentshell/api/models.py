"""
Pydantic models for agentshell API requests and responses.
This module defines the request and response schemas used by the HTTP API.
"""

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

from agentshell.core.schema import (
    PlanSummary,
    ToolCall,
    ToolResult,
    Usage,
)
from agentshell.pipeline.processors import CodeBlock


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionRequest(BaseModel):
    """Request to create a new session."""

    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")


class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str
    created: float


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")
    intelligent: Optional[bool] = Field(
        None, description="Force planner (true) or model loop (false); default from settings"
    )


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    session_id: str
    tools_used: List[ToolResult] = Field(default_factory=list)
    tokens: Optional[Usage] = None
    plan: Optional[PlanSummary] = None
    code_blocks: List[CodeBlock] = Field(default_factory=list)
    unhandled_tool_calls: List[ToolCall] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """One conversation message as exposed by ``GET /sessions/{id}/history``."""

    role: str
    content: str
    tool_calls: List[ToolCall] = Field(default_factory=list)
    timestamp: str
