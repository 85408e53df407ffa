"""ToolDispatcher: answers the model's tool calls.

For every call in an assistant turn, the matching tool is run and its
encoded result appended to the transcript as a ``tool`` message carrying
the call id, in the order the calls were listed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from chatwire.core.transcript import Transcript
from chatwire.events.bus import EventBus
from chatwire.tools.registry import ToolRegistry
from chatwire.types import ChatEvent, EventType, Message, ToolCall

_logger = logging.getLogger(__name__)


def _is_error_payload(result: str) -> bool:
    try:
        data = json.loads(result)
    except json.JSONDecodeError:
        return False
    return isinstance(data, dict) and set(data) == {"error"}


class ToolDispatcher:
    """Runs tool calls through the registry, sequentially.

    Usage::

        dispatcher = ToolDispatcher(registry, transcript, event_bus)
        await dispatcher.dispatch(message.tool_calls)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        transcript: Transcript,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._transcript = transcript
        self._event_bus = event_bus

    async def dispatch(self, tool_calls: Iterable[ToolCall]) -> None:
        """Execute *tool_calls* and append one tool message per call.

        An unknown function name raises ``ToolError`` and stops dispatch;
        results of calls already made stay in the transcript.
        """
        for tc in tool_calls:
            await self._emit(EventType.TOOL_EXECUTING, {
                "tool": tc.name,
                "call_id": tc.id,
                "arguments": tc.arguments,
            })

            result = await self._registry.execute(tc.name, tc.arguments)

            if _is_error_payload(result):
                _logger.info("Tool %s returned an error payload: %s", tc.name, result)
                await self._emit(EventType.TOOL_ERROR, {
                    "tool": tc.name,
                    "call_id": tc.id,
                    "error": result,
                })
            else:
                await self._emit(EventType.TOOL_EXECUTED, {
                    "tool": tc.name,
                    "call_id": tc.id,
                    "output_length": len(result),
                })

            self._transcript.append(
                Message(role="tool", content=result, tool_call_id=tc.id)
            )

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus:
            await self._event_bus.emit(ChatEvent(type=event_type, data=data))
