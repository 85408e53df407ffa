"""Async pub/sub EventBus for observing a conversation from the outside."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from chatwire.types import ChatEvent, EventType

_logger = logging.getLogger(__name__)

# Subscribing to this topic receives every event
ALL_EVENTS = "*"

# Sync or async callables taking a ChatEvent
Handler = Callable[[ChatEvent], Any]


def _topic(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


class EventBus:
    """Ordered pub/sub for engine events.

    Handlers subscribe to one ``EventType`` (or its string value) or to
    ``"*"``, and may be plain functions or coroutines.  ``emit()`` delivers
    to topic subscribers first, then to ``"*"`` subscribers, one at a time,
    so streamed ``LLM_DELTA`` events reach every handler in the order they
    were produced.  A handler that raises is logged; delivery continues.

    Parameters
    ----------
    max_history:
        Number of most recent events kept in ``history``.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._subscribers: dict[str, list[Handler]] = {}
        self._recent: list[ChatEvent] = []
        self._max_history = max_history

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        self._subscribers.setdefault(_topic(event_type), []).append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        subscribers = self._subscribers.get(_topic(event_type))
        if subscribers and handler in subscribers:
            subscribers.remove(handler)

    async def emit(self, event: ChatEvent) -> None:
        self._recent.append(event)
        overflow = len(self._recent) - self._max_history
        if overflow > 0:
            del self._recent[:overflow]

        targets = [
            *self._subscribers.get(_topic(event.type), ()),
            *self._subscribers.get(ALL_EVENTS, ()),
        ]
        for handler in targets:
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                _logger.exception(
                    "Subscriber %r failed on %s",
                    getattr(handler, "__qualname__", handler),
                    event.type.value,
                )

    @property
    def history(self) -> list[ChatEvent]:
        """Most recent events, oldest first."""
        return list(self._recent)

    def clear(self) -> None:
        """Drop all subscribers and the event history."""
        self._subscribers.clear()
        self._recent.clear()
