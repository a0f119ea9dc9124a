"""Main orchestration loop for agentshell."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import List

from agentshell.agent.conversation import ConversationStore
from agentshell.agent.tool_executor import (
    ToolDispatchError,
    ToolDispatcher,
)
from agentshell.core.schema import (
    AgentResponse,
    ChatResponse,
    Message,
    Role,
    ToolCall,
    ToolResult,
)
from agentshell.llm.transport import BaseTransport

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """States one turn moves through."""

    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FINAL_MODEL = "awaiting_final_model"
    DONE = "done"


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drives one user turn against the model.

    The loop makes at most two transport calls per turn: one to let the model answer or request
    tools, and, if tools were requested, one more with the tool results appended.  Tool calls
    requested by that second response are *not* executed (multi-hop tool chains are a known
    limitation); they are reported in :attr:`AgentResponse.unhandled_tool_calls`.
    """

    def __init__(
        self,
        transport: BaseTransport,
        dispatcher: ToolDispatcher,
        store: ConversationStore,
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.store = store
        self.state = LoopState.DONE

    def _transition(self, state: LoopState) -> None:
        logger.debug("Loop state: %s -> %s", self.state.value, state.value)
        self.state = state

    async def run_turn(self, user_message: str) -> AgentResponse:
        """
        Process *user_message* and return the agent's reply.

        Raises
        ------
        TransportError
            If either transport call fails.  The turn is abandoned; messages appended so far
            remain in the store.
        """
        specs = self.dispatcher.registry.specs()
        self.store.add(Role.USER, user_message)

        self._transition(LoopState.AWAITING_MODEL)
        response = await self.transport.chat(self.store.messages, specs)

        if not response.tool_calls:
            self.store.add(Role.ASSISTANT, response.content)
            self._transition(LoopState.DONE)
            return AgentResponse(message=response.content, tokens=response.usage)

        self._transition(LoopState.EXECUTING_TOOLS)
        logger.info(
            "Model requested %d tool call(s): %s",
            len(response.tool_calls),
            [call.name for call in response.tool_calls],
        )
        results = await self._execute_tools(response.tool_calls)

        self.store.add(Role.ASSISTANT, response.content, tool_calls=response.tool_calls)
        self.store.append(tool_message(results))

        self._transition(LoopState.AWAITING_FINAL_MODEL)
        final = await self.transport.chat(self.store.messages, specs)
        self._warn_unhandled(final)

        self.store.add(Role.ASSISTANT, final.content)
        self._transition(LoopState.DONE)
        return AgentResponse(
            message=final.content,
            tools_used=results,
            tokens=final.usage,
            unhandled_tool_calls=final.tool_calls,
        )

    async def _execute_tools(self, calls: List[ToolCall]) -> List[ToolResult]:
        """Run *calls* strictly in order; a failing call does not stop the batch."""
        self.dispatcher.new_batch()
        results: List[ToolResult] = []
        for call in calls:
            try:
                payload = await self.dispatcher.dispatch(call.name, call.arguments, call.id)
            except ToolDispatchError as exc:
                logger.warning("Tool call '%s' failed: %s", call.name, exc)
                results.append(
                    ToolResult(tool_name=call.name, call_id=call.id, success=False, error=str(exc))
                )
                continue

            # A handler reporting {"success": False} still dispatched fine
            logger.info("Tool '%s' returned: %s", call.name, payload)
            results.append(
                ToolResult(tool_name=call.name, call_id=call.id, success=True, payload=payload)
            )
        return results

    @staticmethod
    def _warn_unhandled(final: ChatResponse) -> None:
        if final.tool_calls:
            logger.warning(
                "Final response requested %d more tool call(s) %s; only one tool round-trip "
                "per turn is supported, ignoring them",
                len(final.tool_calls),
                [call.name for call in final.tool_calls],
            )


def tool_message(results: List[ToolResult]) -> Message:
    """Build the aggregated tool-result message the loop appends after a batch."""
    return Message(
        role=Role.TOOL,
        content=json.dumps([result.model_dump(mode="json") for result in results]),
    )
