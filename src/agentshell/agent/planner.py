"""
Deterministic intent -> plan -> execute -> format front-end.

Instead of letting the model reason over several steps, the planner classifies the request
locally with keyword patterns, picks a fixed sequence of tool calls for that intent and runs it
through the dispatcher.  Only the ``ai_decide`` pseudo-action reaches the model.
"""

import logging
import re
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

from agentshell.agent.tool_executor import ToolDispatcher
from agentshell.core.schema import (
    AgentResponse,
    Message,
    PlanSummary,
    Role,
)
from agentshell.llm.transport import BaseTransport

logger = logging.getLogger(__name__)

AI_DECIDE = "ai_decide"


class Intent(str, Enum):
    """What the user is asking for; ``GENERAL`` when nothing matches."""

    READ = "read"
    WRITE = "write"
    MODIFY = "modify"
    DEBUG = "debug"
    ANALYZE = "analyze"
    TEST = "test"
    EXPLAIN = "explain"
    SEARCH = "search"
    GENERAL = "general"


# Order matters: the first matching category wins
INTENT_PATTERNS: Tuple[Tuple[Intent, re.Pattern], ...] = (
    (Intent.READ, re.compile(r"\b(?:read|show|display|view|get|fetch)", re.IGNORECASE)),
    (Intent.WRITE, re.compile(r"\b(?:write|create|save|generate|make)", re.IGNORECASE)),
    (
        Intent.MODIFY,
        re.compile(r"\b(?:change|update|modify|edit|refactor|improve)", re.IGNORECASE),
    ),
    (Intent.DEBUG, re.compile(r"\b(?:debug|fix|error|bug|issue|problem)", re.IGNORECASE)),
    (Intent.ANALYZE, re.compile(r"\b(?:analy[sz]e|check|review|examine|inspect)", re.IGNORECASE)),
    (Intent.TEST, re.compile(r"\b(?:test|testing|spec|unittest)", re.IGNORECASE)),
    (Intent.EXPLAIN, re.compile(r"\b(?:explain|describe|what|how|why)", re.IGNORECASE)),
    (Intent.SEARCH, re.compile(r"\b(?:search|find|locate|look for)", re.IGNORECASE)),
)

_EXTENSIONS = r"(?:jsx|js|tsx|ts|json|md|txt|py)"
FILE_PATH_PATTERNS: Tuple[re.Pattern, ...] = (
    # Quoted paths
    re.compile(rf"""['"]([^'"]+\.{_EXTENSIONS})['"]"""),
    # Unquoted paths with a known extension
    re.compile(rf"(?<![\w./-])([\w\-/.]+\.{_EXTENSIONS})(?!\w)"),
    # Relative paths
    re.compile(r"(?<![\w./-])(\.{1,2}/[\w\-/.]+)"),
)

SEARCH_TERM_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"""search for ["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""find ["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""looking for ["']([^"']+)["']""", re.IGNORECASE),
    # Fallback: any quoted string
    re.compile(r"""["']([^"']+)["']"""),
)

_PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class Step(BaseModel):
    """One planned action; string parameters may hold ``{{name}}`` placeholders."""

    action: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class Plan(BaseModel):
    """Fixed, per-turn sequence of steps.  Never persisted."""

    intent: Intent
    steps: List[Step] = Field(default_factory=list)


class StepOutcome(BaseModel):
    """What happened to one step: a result or an error, never both."""

    step: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        if self.error is not None:
            return True
        return isinstance(self.result, dict) and self.result.get("success") is False


class PlanStepError(RuntimeError):
    """A single plan step failed; recorded in its :class:`StepOutcome`, never raised out."""

    def __init__(self, action: str, cause: BaseException):
        super().__init__(f"Step '{action}' failed: {cause}")
        self.action = action
        self.cause = cause


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------
def classify_intent(message: str) -> Intent:
    """Map *message* to exactly one intent; ``GENERAL`` when no category matches."""
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(message):
            return intent
    return Intent.GENERAL


def extract_file_paths(message: str) -> List[str]:
    """File paths mentioned in *message*, most specific pattern first, without duplicates."""
    paths: List[str] = []
    for pattern in FILE_PATH_PATTERNS:
        for match in pattern.finditer(message):
            paths.append(match.group(1).rstrip(".,;:"))
    return list(dict.fromkeys(p for p in paths if p))


def extract_search_term(message: str) -> Optional[str]:
    for pattern in SEARCH_TERM_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def substitute_placeholders(
    parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    """Replace ``{{name}}`` with ``context[name]``; unknown names stay as literal text."""

    def _replace(match: re.Match) -> str:
        value = context.get(match.group(1).strip())
        return match.group(0) if value is None else str(value)

    return {
        key: _PLACEHOLDER_RE.sub(_replace, value) if isinstance(value, str) else value
        for key, value in parameters.items()
    }


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------
class Planner:
    """Runs one turn as classify -> plan -> execute -> format."""

    def __init__(self, dispatcher: ToolDispatcher, transport: BaseTransport):
        self.dispatcher = dispatcher
        self.transport = transport

    async def process(self, message: str) -> AgentResponse:
        intent = classify_intent(message)
        plan = self.create_plan(message, intent)
        logger.info(
            "Planner intent=%s steps=%s", intent.value, [step.action for step in plan.steps]
        )
        outcomes, _ = await self.execute_plan(plan)
        return self.format_response(plan, outcomes)

    def create_plan(self, message: str, intent: Intent | None = None) -> Plan:
        """Build the fixed step template for *intent* (classified from *message* if omitted)."""
        intent = intent or classify_intent(message)
        paths = extract_file_paths(message)
        path = paths[0] if paths else None
        read = Step(action="read_file", parameters={"path": path})
        list_cwd = Step(action="list_files", parameters={"path": "."})

        steps: List[Step]
        if intent is Intent.READ:
            steps = [read] if path else [list_cwd]
        elif intent in (Intent.WRITE, Intent.MODIFY):
            if path:
                steps = [
                    read,
                    Step(action="analyze_code", parameters={"code": "{{file_content}}"}),
                    Step(action="generate_code", parameters={"description": message}),
                ]
            elif intent is Intent.WRITE:
                steps = [Step(action="generate_code", parameters={"description": message})]
            else:
                steps = [list_cwd]
        elif intent is Intent.DEBUG:
            steps = (
                [read, Step(action="debug_code", parameters={"code": "{{file_content}}"})]
                if path
                else [list_cwd]
            )
        elif intent is Intent.ANALYZE:
            steps = (
                [read, Step(action="analyze_code", parameters={"code": "{{file_content}}"})]
                if path
                else [list_cwd]
            )
        elif intent is Intent.TEST:
            if path:
                framework = "pytest" if path.endswith(".py") else "jest"
                steps = [
                    read,
                    Step(
                        action="test_code",
                        parameters={"code": "{{file_content}}", "framework": framework},
                    ),
                ]
            else:
                steps = [list_cwd]
        elif intent is Intent.SEARCH:
            term = extract_search_term(message)
            steps = [Step(action="search_files", parameters={"pattern": term or ".*"})]
        else:
            # Explain / general: let the model decide
            steps = [Step(action=AI_DECIDE, parameters={"message": message})]

        return Plan(intent=intent, steps=steps)

    async def execute_plan(self, plan: Plan) -> Tuple[List[StepOutcome], Dict[str, Any]]:
        """
        Run every step in order.  A failing step is recorded and the next one still runs.

        Returns
        -------
        tuple
            The per-step outcomes and the final execution context.
        """
        outcomes: List[StepOutcome] = []
        context: Dict[str, Any] = {}

        for step in plan.steps:
            parameters = substitute_placeholders(step.parameters, context)
            try:
                result = await self._run_step(step.action, parameters)
            except Exception as exc:  # pylint: disable=broad-except
                error = PlanStepError(step.action, exc)
                logger.warning("%s", error)
                outcomes.append(
                    StepOutcome(step=step.action, parameters=parameters, error=str(exc))
                )
                continue

            outcomes.append(StepOutcome(step=step.action, parameters=parameters, result=result))
            if step.action == "read_file" and isinstance(result, dict) and result.get("success"):
                context["file_content"] = result.get("content")
                context["file_path"] = result.get("path")

        return outcomes, context

    async def _run_step(self, action: str, parameters: Dict[str, Any]) -> Any:
        if action == AI_DECIDE:
            response = await self.transport.chat(
                [Message(role=Role.USER, content=parameters.get("message", ""))],
                self.dispatcher.registry.specs(),
            )
            return response.model_dump(mode="json")
        return await self.dispatcher.dispatch(action, parameters)

    @staticmethod
    def _metric(outcome: StepOutcome) -> str:
        result = outcome.result if isinstance(outcome.result, dict) else {}
        action = outcome.step
        if action == "read_file":
            return f"File: {result.get('path')} ({result.get('size')} bytes)"
        if action == "analyze_code":
            complexity = (result.get("complexity") or {}).get("level", "unknown")
            return (
                f"Analysis: {result.get('lines')} lines, complexity {complexity}, "
                f"{len(result.get('issues') or [])} issues"
            )
        if action == "debug_code":
            return f"Found {len(result.get('issues') or [])} issues"
        if action == "list_files":
            return f"Listed {len(result.get('files') or [])} entries in {result.get('path')}"
        if action == "search_files":
            return f"{result.get('matches', 0)} matches for '{result.get('pattern')}'"
        if action == "generate_code":
            size = len(result.get("code") or "")
            return f"Generated {result.get('language')} code ({size} chars)"
        if action == "test_code":
            return f"Generated {result.get('framework')} tests"
        if action == AI_DECIDE:
            content = (result.get("content") or "").strip()
            if result.get("tool_calls"):
                names = ", ".join(c.get("name", "?") for c in result["tool_calls"])
                return f"Model suggested: {names}"
            return content.splitlines()[0] if content else "No answer"
        return "done"

    def format_response(self, plan: Plan, outcomes: Sequence[StepOutcome]) -> AgentResponse:
        """One human-readable line per step plus the structured outcomes."""
        lines: List[str] = []
        for index, outcome in enumerate(outcomes, start=1):
            label = f"Step {index} ({outcome.step})"
            if outcome.error is not None:
                lines.append(f"❌ {label} failed: {outcome.error}")
            elif outcome.failed:
                lines.append(f"❌ {label} failed: {outcome.result.get('error', 'unknown error')}")
            else:
                lines.append(f"✅ {label} completed: {self._metric(outcome)}")

        return AgentResponse(
            message="\n".join(lines),
            plan=PlanSummary(intent=plan.intent.value, steps=len(plan.steps)),
            results=[outcome.model_dump(mode="json") for outcome in outcomes],
        )
