"""
Agent facade.

:class:`Agent` owns one conversation, one dispatcher, the orchestration loop and the planner, and
routes each turn to one of them.  Create one agent per session.
"""

import logging
import time
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

from agentshell.agent.agent_loop import AgentLoop
from agentshell.agent.conversation import ConversationStore
from agentshell.agent.planner import Planner
from agentshell.agent.tool_executor import (
    ToolDispatcher,
    ToolRegistry,
)
from agentshell.common import truncate
from agentshell.config import Settings
from agentshell.core.schema import (
    AgentResponse,
    Role,
    ToolSpec,
)
from agentshell.llm.transport import (
    BaseTransport,
    load_transport,
)
from agentshell.tools import build_default_registry

logger = logging.getLogger(__name__)


class CodingTask(BaseModel):
    """A structured request that is turned into a prompt by :meth:`Agent.build_task_prompt`."""

    type: str = "general"  # implement, fix, refactor or general
    description: str
    files: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    file: Optional[str] = None


class Agent:
    """Conversational coding agent backed by a transport and a tool registry."""

    def __init__(
        self,
        settings: Settings,
        transport: BaseTransport | None = None,
        registry: ToolRegistry | None = None,
        store: ConversationStore | None = None,
    ):
        self.settings = settings
        self.transport = transport or load_transport(settings)
        self.dispatcher = ToolDispatcher(registry or build_default_registry(settings.WORKING_DIR))
        self.store = store or ConversationStore()
        self.loop = AgentLoop(self.transport, self.dispatcher, self.store)
        self.planner = Planner(self.dispatcher, self.transport)
        self.intelligent_mode = settings.INTELLIGENT_MODE
        self.context: Dict[str, Any] = {}
        logger.info(
            "Agent ready: transport=%s tools=%d intelligent=%s",
            self.transport.name,
            len(self.dispatcher.registry),
            self.intelligent_mode,
        )

    @property
    def registry(self) -> ToolRegistry:
        return self.dispatcher.registry

    def tool_specs(self) -> List[ToolSpec]:
        return self.registry.specs()

    async def chat(self, message: str, intelligent: bool | None = None) -> AgentResponse:
        """
        Run one turn.

        Args:
            message: The user's input.
            intelligent: Force the planner (True) or the model loop (False); defaults to the
                agent's ``intelligent_mode``.
        """
        logger.info("User: %s", truncate(message))
        use_planner = self.intelligent_mode if intelligent is None else intelligent

        if not use_planner:
            return await self.loop.run_turn(message)

        self.store.add(Role.USER, message)
        response = await self.planner.process(message)
        self.store.add(Role.ASSISTANT, response.message)
        return response

    async def execute_task(self, task: CodingTask | Dict[str, Any] | str) -> AgentResponse:
        """Turn *task* into a prompt and run it as a normal turn."""
        if isinstance(task, str):
            task = CodingTask(description=task)
        elif isinstance(task, dict):
            task = CodingTask.model_validate(task)
        logger.info("Executing task: %s", task.type)
        return await self.chat(self.build_task_prompt(task))

    @staticmethod
    def build_task_prompt(task: CodingTask) -> str:
        if task.type == "implement":
            prompt = f"Implement the following feature:\n\n{task.description}\n\n"
            if task.files:
                prompt += f"Files to modify: {', '.join(task.files)}\n"
            if task.requirements:
                prompt += "Requirements:\n" + "\n".join(f"- {r}" for r in task.requirements)
                prompt += "\n"
            return prompt
        if task.type == "fix":
            prompt = f"Fix the following issue:\n\n{task.description}\n\n"
            if task.error:
                prompt += f"Error: {task.error}\n\n"
            if task.file:
                prompt += f"File: {task.file}\n"
            return prompt
        if task.type == "refactor":
            prompt = f"Refactor the following:\n\n{task.description}\n\n"
            if task.file:
                prompt += f"File: {task.file}\n"
            return prompt
        return task.description

    # -----------------------------------------------------------------------
    # Context & history
    # -----------------------------------------------------------------------
    def set_context(self, key: str, value: Any) -> None:
        self.context[key] = value
        logger.debug("Context set: %s", key)

    def get_context(self, key: str | None = None) -> Any:
        return self.context.get(key) if key else dict(self.context)

    def clear_history(self) -> None:
        self.store.clear()

    def export_conversation(self) -> Dict[str, Any]:
        return {
            "history": self.store.export(),
            "context": dict(self.context),
            "timestamp": time.time(),
        }

    def import_conversation(self, data: Dict[str, Any]) -> None:
        """Replace history and context with an :meth:`export_conversation` dump."""
        self.store = ConversationStore.from_export(data.get("history") or [])
        self.loop.store = self.store
        self.context = dict(data.get("context") or {})
        logger.info("Conversation imported (%d messages)", len(self.store))
