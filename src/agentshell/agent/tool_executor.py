"""
Tool registry and dispatcher.

Tools are registered on a :class:`ToolRegistryBuilder` at startup, frozen into an immutable
:class:`ToolRegistry`, and executed through a :class:`ToolDispatcher` that wraps errors::

    builder = ToolRegistryBuilder()

    @builder.tool("echo", description="Echo the input text back")
    def echo(text: str) -> dict:
        return {"success": True, "text": text}

    dispatcher = ToolDispatcher(builder.build())
    await dispatcher.dispatch("echo", {"text": "hi"})
"""

import inspect
import logging
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    get_type_hints,
)

from agentshell.core.schema import ToolSpec

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class ToolDispatchError(RuntimeError):
    """Base class for every dispatcher-level failure."""


class ToolNotFound(ToolDispatchError):
    """Raised when a requested tool is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' is not registered.")
        self.tool_name = tool_name


class ToolExecutionError(ToolDispatchError):
    """Raised when a tool handler fails."""

    def __init__(self, tool_name: str, cause: BaseException, message: str | None = None) -> None:
        super().__init__(message or f"Tool '{tool_name}' raised an error: {cause}")
        self.tool_name = tool_name
        self.cause = cause


class DuplicateToolCall(ToolDispatchError):
    """Raised when the same tool-call id is dispatched a second time."""


# ---------------------------------------------------------------------------
# Spec derivation
# ---------------------------------------------------------------------------
_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def spec_from_function(name: str, fn: ToolHandler, description: str | None = None) -> ToolSpec:
    """Build a :class:`ToolSpec` from the signature and docstring of *fn*."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for param_name, param in sig.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        param_type = type_hints.get(param_name)
        properties[param_name] = {"type": _JSON_TYPES.get(param_type, "string")}
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    doc = description if description is not None else inspect.getdoc(fn) or ""
    return ToolSpec(
        name=name,
        description=doc.strip().splitlines()[0] if doc.strip() else "",
        parameters={"type": "object", "properties": properties, "required": required},
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class ToolRegistry(Mapping[str, ToolHandler]):
    """Read-only mapping of tool name -> handler, plus the specs shown to the model."""

    def __init__(self, handlers: Mapping[str, ToolHandler], specs: Mapping[str, ToolSpec]):
        self._handlers = MappingProxyType(dict(handlers))
        self._specs = MappingProxyType(dict(specs))

    def __getitem__(self, name: str) -> ToolHandler:
        return self._handlers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def spec(self, name: str) -> ToolSpec:
        """Return the spec registered for *name*."""
        return self._specs[name]

    def specs(self) -> List[ToolSpec]:
        """All specs in registration order."""
        return list(self._specs.values())


class ToolRegistryBuilder:
    """Collects handlers at startup and produces an immutable :class:`ToolRegistry`."""

    def __init__(self) -> None:
        self._handlers: Dict[str, ToolHandler] = {}
        self._specs: Dict[str, ToolSpec] = {}

    def register(
        self, name: str, handler: ToolHandler, spec: ToolSpec | None = None
    ) -> "ToolRegistryBuilder":
        """
        Register *handler* under *name*.

        Parameters
        ----------
        name:
            The tool name.  This must be unique and is the name the model calls.
        handler:
            Sync or async callable invoked with the call arguments as keyword arguments.
        spec:
            Description shown to the model.  Derived from the handler signature if omitted.

        Raises
        ------
        ValueError
            If a handler with the same name is already registered.
        """
        if name in self._handlers:
            raise ValueError(f"Tool '{name}' is already registered.")
        if not callable(handler):
            raise TypeError(f"Handler for tool '{name}' is not callable.")
        logger.debug("Registering tool '%s'", name)
        self._handlers[name] = handler
        self._specs[name] = spec or spec_from_function(name, handler)
        return self

    def tool(
        self,
        name: str,
        description: str | None = None,
        parameters: Dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`register`."""

        def wrapper(fn: ToolHandler) -> ToolHandler:
            spec = None
            if parameters is not None:
                spec = ToolSpec(
                    name=name,
                    description=description or inspect.getdoc(fn) or "",
                    parameters=parameters,
                )
            elif description is not None:
                spec = spec_from_function(name, fn, description)
            self.register(name, fn, spec)
            return fn

        return wrapper

    def build(self) -> ToolRegistry:
        """Freeze the collected handlers."""
        return ToolRegistry(self._handlers, self._specs)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class ToolDispatcher:
    """Looks up tools in a registry, invokes them and wraps their errors."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry
        self._dispatched: Set[str] = set()

    def new_batch(self) -> None:
        """Forget the call ids of the previous batch; ids only need to be unique within one."""
        self._dispatched.clear()

    async def dispatch(
        self, name: str, arguments: Dict[str, Any] | None = None, call_id: Optional[str] = None
    ) -> Any:
        """
        Look up *name* in the registry and invoke it with *arguments*.

        Parameters
        ----------
        name:
            The registered tool name.
        arguments:
            Keyword arguments to pass verbatim to the tool handler.  If *None*, an empty dict is
            assumed.
        call_id:
            Id of the ToolCall being served.  A handler is never run twice for the same id
            within one batch (see :meth:`new_batch`).

        Returns
        -------
        Any
            Whatever the tool handler returns.  A ``{"success": False, ...}`` result is a
            successful dispatch carrying a domain failure.

        Raises
        ------
        ToolNotFound
            If the tool is missing.  No handler is invoked.
        DuplicateToolCall
            If *call_id* was already dispatched in the current batch.
        ToolExecutionError
            If the handler invocation raises an exception.
        """
        if arguments is None:
            arguments = {}

        handler = self.registry.get(name)
        if handler is None:
            raise ToolNotFound(name)

        if call_id is not None:
            if call_id in self._dispatched:
                raise DuplicateToolCall(f"Tool call '{call_id}' ({name}) was already dispatched.")
            self._dispatched.add(call_id)

        try:
            logger.debug("Executing tool '%s' with args=%s", name, arguments)
            result = handler(**arguments)
            if inspect.isawaitable(result):
                result = await result
            return result
        except TypeError as exc:
            # Argument mismatch: surface a clean exception
            logger.exception("Argument error while executing tool '%s'", name)
            raise ToolExecutionError(
                name, exc, f"Invalid arguments for tool '{name}': {exc}"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(name, exc) from exc
