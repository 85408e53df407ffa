"""Append-only conversation transcript."""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from chatwire.types import ROLES, Message


class Transcript:
    """Ordered list of messages owned by a single engine.

    Messages are immutable and can only be appended; the list is replayed
    in full on every request.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        if message.role not in ROLES:
            raise ValueError(f"Invalid role {message.role!r}; expected one of {ROLES}")
        self._messages.append(message)

    def add(self, role: str, content: str, **kwargs: Any) -> Message:
        """Build a message, append it, and return it."""
        message = Message(role=role, content=content, **kwargs)
        self.append(message)
        return message

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def to_wire(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]
