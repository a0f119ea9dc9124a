"""
HTTP API for agentshell.

:func:`create_app` builds a FastAPI application around one :class:`SmartAgent` per session and a
shared :class:`SessionStore`.  It exposes the following endpoints:
- **GET /health**  - liveness check.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /agent**   - one turn: {"message": "...", "session_id": "...", "intelligent": bool}
- **GET /sessions/{id}/history** - the session's conversation log.
- **GET /sessions/{id}/resources** - files touched by successful tools.
- **GET /tools** - specs of the registered tools.
"""

import logging
import uuid
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware

from agentshell.agent.agent import Agent
from agentshell.api.models import (
    HistoryEntry,
    MessageRequest,
    MessageResponse,
    SessionRequest,
    SessionResponse,
)
from agentshell.common import (
    AnsiColors,
    colored_print,
)
from agentshell.config import Settings
from agentshell.core.schema import (
    AgentResponse,
    ToolSpec,
)
from agentshell.llm.transport import TransportError
from agentshell.pipeline.processors import InputValidationError
from agentshell.pipeline.smart_agent import SmartAgent
from agentshell.sessions import SessionStore

logger = logging.getLogger(__name__)

AgentFactory = Callable[[Settings], Agent]

# Keys of a tool result payload that name a file on disk
_PATH_KEYS = ("path", "destination")


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def touched_files(response: AgentResponse) -> List[Dict[str, str]]:
    """
    Files named by the successful tool invocations of one turn.

    Covers both the model loop (``tools_used``) and planner turns (``results``).
    """
    found: List[Dict[str, str]] = []

    def _collect(tool: str, payload: Any) -> None:
        if not isinstance(payload, dict) or payload.get("success") is False:
            return
        for key in _PATH_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value:
                found.append({"tool": tool, "path": value})

    for result in response.tools_used:
        if result.success:
            _collect(result.tool_name, result.payload)
    for outcome in response.results:
        if outcome.get("error") is None:
            _collect(outcome.get("step", ""), outcome.get("result"))
    return found


class SessionRegistry:
    """Per-session agents plus the shared resource store."""

    def __init__(self, settings: Settings, agent_factory: AgentFactory | None = None):
        self.settings = settings
        self.agent_factory = agent_factory or Agent
        self.store = SessionStore()
        self.agents: Dict[str, SmartAgent] = {}

    def create(self, metadata: Dict[str, Any] | None = None) -> str:
        session_id = str(uuid.uuid4())
        self.store.create_session(session_id, metadata)
        self.agents[session_id] = SmartAgent(
            self.agent_factory(self.settings),
            session_id=session_id,
            enable_formatting=False,
        )
        logger.info("Session %s created", session_id)
        return session_id

    def get_or_create(self, session_id: Optional[str] = None) -> str:
        if session_id is None:
            return self.create()
        if session_id not in self.agents:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return session_id

    def require(self, session_id: str) -> SmartAgent:
        smart_agent = self.agents.get(session_id)
        if smart_agent is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return smart_agent

    def attach(self, session_id: str, files: Iterable[Dict[str, str]]) -> None:
        for item in files:
            self.store.add_resource(
                session_id, {"type": "file", "uri": item["path"], "tool": item["tool"]}
            )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(settings: Settings, agent_factory: AgentFactory | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    settings:
        Configuration shared by every session's agent.
    agent_factory:
        Builds the :class:`Agent` of a new session (default: ``Agent(settings)``).
    """
    registry = SessionRegistry(settings, agent_factory)
    # Every session shares the same tool set
    tool_specs = registry.agent_factory(settings).tool_specs()

    app = FastAPI(
        title="agentshell API", version="0.1.0", description="Tool-using coding agent API"
    )
    app.state.sessions = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[f"http://localhost:{settings.API_PORT}"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
    async def create_session(req: SessionRequest | None = None) -> SessionResponse:
        session_id = registry.create(req.metadata if req else None)
        session = registry.store.get_session(session_id)
        return SessionResponse(session_id=session_id, created=session.created)

    @app.get("/sessions", response_model=List[str], summary="List active sessions")
    async def list_sessions() -> List[str]:
        return registry.store.list_sessions()

    @app.post("/agent", response_model=MessageResponse, summary="Process a message")
    async def agent_endpoint(req: MessageRequest) -> MessageResponse:
        """Run one turn in the given (or a new) session."""
        session_id = registry.get_or_create(req.session_id)
        smart_agent = registry.require(session_id)

        try:
            result = await smart_agent.execute(req.message, intelligent=req.intelligent)
        except InputValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except TransportError as exc:
            logger.warning("Transport failure in session %s: %s", session_id, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc

        response = result.response
        registry.attach(session_id, touched_files(response))

        return MessageResponse(
            reply=result.message,
            session_id=session_id,
            tools_used=response.tools_used,
            tokens=response.tokens,
            plan=response.plan,
            code_blocks=result.code_blocks,
            unhandled_tool_calls=response.unhandled_tool_calls,
        )

    @app.get(
        "/sessions/{session_id}/history",
        response_model=List[HistoryEntry],
        summary="Conversation history",
    )
    async def session_history(session_id: str) -> List[HistoryEntry]:
        smart_agent = registry.require(session_id)
        return [HistoryEntry.model_validate(item) for item in smart_agent.agent.store.export()]

    @app.get("/sessions/{session_id}/resources", summary="Files touched in a session")
    async def session_resources(session_id: str) -> List[Dict[str, Any]]:
        registry.require(session_id)
        return registry.store.list_resources(session_id)

    @app.get("/tools", response_model=List[ToolSpec], summary="Registered tools")
    async def list_tools() -> List[ToolSpec]:
        return tool_specs

    return app


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    settings: Settings, host: str = "0.0.0.0", port: int | None = None, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting the app built from *settings*.

    Parameters
    ----------
    settings:
        Application configuration.
    host, port:
        Bind address for the HTTP server (port defaults to ``settings.API_PORT``).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - uvicorn is only needed when actually serving
    import uvicorn  # pylint: disable=import-outside-toplevel

    port = port or settings.API_PORT
    log_level = log_level or settings.LOG_LEVEL

    logger.info("Starting agentshell API at %s:%d (log_level=%s)", host, port, log_level)
    logger.debug("API settings: %s", settings.model_dump(exclude={"LLM_API_KEY"}))

    colored_print(f"🔮 agentshell API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=log_level)
