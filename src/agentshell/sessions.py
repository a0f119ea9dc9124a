"""
In-memory MCP-style session store.

Sessions hold opaque resources (``{"type": ..., "uri": ...}`` mappings) and a context map;
prompt templates are shared across sessions.  Nothing here is persisted.
"""

import logging
import re
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

logger = logging.getLogger(__name__)


class SessionNotFound(KeyError):
    """Raised when a session id is unknown."""

    def __str__(self) -> str:
        return f"Session not found: {self.args[0]}"


class PromptNotFound(KeyError):
    """Raised when a prompt template name is unknown."""

    def __str__(self) -> str:
        return f"Prompt not found: {self.args[0]}"


class Session(BaseModel):
    id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created: float = Field(default_factory=time.time)
    resources: List[str] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)


class PromptTemplate(BaseModel):
    name: str
    template: str
    parameters: List[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)


class SessionStore:
    """Attach and retrieve resources per session."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._resources: Dict[str, Dict[str, Any]] = {}
        self._prompts: Dict[str, PromptTemplate] = {}

    def create_session(self, session_id: str, metadata: Dict[str, Any] | None = None) -> Session:
        session = Session(id=session_id, metadata=metadata or {})
        self._sessions[session_id] = session
        logger.debug("Created session %s", session_id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> List[str]:
        return list(self._sessions)

    def delete_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        for resource_id in session.resources:
            self._resources.pop(resource_id, None)

    def add_resource(self, session_id: str, resource: Dict[str, Any]) -> str:
        """
        Attach *resource* to a session and return its id (``"<type>:<uri>"``).

        Raises
        ------
        SessionNotFound
            If the session does not exist.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        resource_id = f"{resource.get('type')}:{resource.get('uri')}"
        self._resources[resource_id] = {
            **resource,
            "session_id": session_id,
            "added_at": time.time(),
        }
        if resource_id not in session.resources:
            session.resources.append(resource_id)
        return resource_id

    def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]:
        return self._resources.get(resource_id)

    def list_resources(self, session_id: str) -> List[Dict[str, Any]]:
        """Resources of *session_id*; an unknown session has none."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return [self._resources[r] for r in session.resources if r in self._resources]

    def update_context(self, session_id: str, key: str, value: Any) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        session.context[key] = value

    def register_prompt(
        self, name: str, template: str, parameters: List[str] | None = None
    ) -> None:
        self._prompts[name] = PromptTemplate(
            name=name, template=template, parameters=parameters or []
        )

    def get_prompt(self, name: str, values: Dict[str, Any] | None = None) -> str:
        """Render prompt *name*, replacing ``{{key}}`` with ``values[key]``."""
        prompt = self._prompts.get(name)
        if prompt is None:
            raise PromptNotFound(name)
        result = prompt.template
        for key, value in (values or {}).items():
            result = re.sub(r"\{\{" + re.escape(key) + r"\}\}", lambda _: str(value), result)
        return result

    def list_prompts(self) -> List[Dict[str, Any]]:
        return [{"name": p.name, "parameters": p.parameters} for p in self._prompts.values()]
