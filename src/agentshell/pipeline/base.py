"""
Middleware / hook / processor composition around a single input.

A :class:`Pipeline` call runs, in order:

1. ``BEFORE_PROCESS`` hooks,
2. every middleware, each receiving the previous one's output,
3. the first processor that accepts the input and returns a non-empty result,
4. ``AFTER_PROCESS`` hooks.

Any exception from a middleware or the selected processor fires the ``ON_ERROR`` hooks and is
re-raised.  Hook handlers are trusted: their own exceptions propagate untouched.
"""

import inspect
import logging
import time
from abc import (
    ABC,
    abstractmethod,
)
from dataclasses import (
    dataclass,
    field,
)
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Union,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Mutable bag threaded through one pipeline invocation, then discarded."""

    session_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_count: int = 0
    working_dir: Optional[str] = None
    user: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class HookEvent(str, Enum):
    """The closed set of lifecycle events a hook can subscribe to."""

    BEFORE_PROCESS = "before_process"
    AFTER_PROCESS = "after_process"
    ON_ERROR = "on_error"


class Processor(ABC):
    """Handles inputs it accepts; the pipeline uses the first one that yields a result."""

    def can_handle(self, data: Any, context: PipelineContext) -> bool:
        return True

    @abstractmethod
    async def process(self, data: Any, context: PipelineContext) -> Any:
        """Return the processed value; an empty result lets the next processor try."""


Middleware = Callable[[Any, PipelineContext], Union[Any, Awaitable[Any]]]
HookHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _is_empty(result: Any) -> bool:
    return result is None or result == "" or result == {} or result == []


class Pipeline:
    """Composable processing around an input; see the module docstring for the order."""

    def __init__(self) -> None:
        self.processors: List[Processor] = []
        self.middleware: List[Middleware] = []
        self.hooks: Dict[HookEvent, List[HookHandler]] = {event: [] for event in HookEvent}

    def register_processor(self, processor: Processor) -> "Pipeline":
        if not callable(getattr(processor, "process", None)):
            raise TypeError("Processor must have a process() method")
        self.processors.append(processor)
        return self

    def use(self, middleware: Middleware) -> "Pipeline":
        if not callable(middleware):
            raise TypeError("Middleware must be callable")
        self.middleware.append(middleware)
        return self

    def on(self, event: HookEvent, handler: HookHandler) -> "Pipeline":
        # Accept the string values too, but only members of the enum
        try:
            event = HookEvent(event)
        except ValueError as exc:
            raise ValueError(f"Unknown event: {event}") from exc
        self.hooks[event].append(handler)
        return self

    async def trigger_hooks(self, event: HookEvent, data: Dict[str, Any]) -> None:
        for handler in self.hooks[event]:
            await _maybe_await(handler(data))

    async def process(self, data: Any, context: PipelineContext | None = None) -> Any:
        """
        Run *data* through middleware and the first matching processor.

        Returns the processor result, or ``None`` when no processor produced one.
        """
        context = context or PipelineContext()
        await self.trigger_hooks(HookEvent.BEFORE_PROCESS, {"input": data, "context": context})
        try:
            processed = data
            for middleware in self.middleware:
                processed = await _maybe_await(middleware(processed, context))

            result = None
            for processor in self.processors:
                if not processor.can_handle(processed, context):
                    continue
                candidate = await processor.process(processed, context)
                if not _is_empty(candidate):
                    logger.debug("Handled by %s", type(processor).__name__)
                    result = candidate
                    break
        except Exception as exc:
            logger.error("Pipeline failed: %s: %s", type(exc).__name__, exc)
            await self.trigger_hooks(
                HookEvent.ON_ERROR, {"error": exc, "input": data, "context": context}
            )
            raise

        await self.trigger_hooks(
            HookEvent.AFTER_PROCESS, {"input": data, "result": result, "context": context}
        )
        return result

