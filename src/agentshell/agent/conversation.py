"""Append-only conversation log shared by the loop and the planner."""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
)

from agentshell.core.schema import (
    Message,
    Role,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Ordered, role-tagged message log.

    The store is the single source of truth for what the model sees next.  Entries are only ever
    appended; a ``tool`` message must directly follow an assistant message that carries tool
    calls.  One store belongs to one session and must not be shared by concurrent turns.
    """

    def __init__(self, messages: Iterable[Message] | None = None):
        self._messages: List[Message] = []
        for message in messages or ():
            self.append(message)

    def append(self, message: Message) -> Message:
        """Append *message*, enforcing the tool-result placement rule."""
        if message.role is Role.TOOL:
            previous = self._messages[-1] if self._messages else None
            if previous is None or previous.role is not Role.ASSISTANT or not previous.tool_calls:
                raise ValueError(
                    "A tool message must immediately follow an assistant message with tool calls."
                )
        self._messages.append(message)
        return message

    def add(self, role: Role, content: str, **kwargs: Any) -> Message:
        """Shorthand for ``append(Message(role=..., content=...))``."""
        return self.append(Message(role=role, content=content, **kwargs))

    @property
    def messages(self) -> List[Message]:
        """A snapshot copy of the log; mutating it does not affect the store."""
        return list(self._messages)

    def clear(self) -> None:
        """Drop the whole history (explicit reset, not an edit)."""
        self._messages.clear()
        logger.info("Conversation history cleared")

    def export(self) -> List[Dict[str, Any]]:
        """JSON-compatible dump of every entry."""
        return [message.model_dump(mode="json") for message in self._messages]

    @classmethod
    def from_export(cls, data: Iterable[Dict[str, Any]]) -> "ConversationStore":
        """Rebuild a store from :meth:`export` output."""
        return cls(Message.model_validate(item) for item in data)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
