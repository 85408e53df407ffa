"""Incremental Server-Sent-Events reader over an async byte source."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator

_logger = logging.getLogger(__name__)


@dataclass
class SSEEvent:
    event: str = ""
    data: str = ""
    id: str = ""
    retry: int = 0


class SSEReader:
    """Turn a raw byte stream into discrete SSE events.

    ``read_event()`` returns ``None`` once the source is exhausted.  Bytes
    after the last blank line (a truncated event, or an unterminated final
    line) are discarded, never dispatched.

    Usage::

        reader = SSEReader(response.aiter_bytes())
        async for event in reader:
            ...
    """

    def __init__(self, source: AsyncIterable[bytes]) -> None:
        self._chunks = source.__aiter__()
        self._buffer = b""
        self._exhausted = False
        self.last_event_id = ""
        self.reconnect_time = 0

    async def _read_line(self) -> str | None:
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = self._buffer[:newline]
                self._buffer = self._buffer[newline + 1:]
                return line.decode("utf-8", errors="replace")
            if self._exhausted:
                return None
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                if self._buffer:
                    _logger.debug("Discarding %d trailing bytes", len(self._buffer))
                    self._buffer = b""
                continue
            self._buffer += chunk

    async def read_event(self) -> SSEEvent | None:
        event_name = ""
        data = ""
        while True:
            raw = await self._read_line()
            if raw is None:
                return None

            line = raw.strip()
            if not line:
                if event_name or data:
                    if data.endswith("\n"):
                        data = data[:-1]
                    return SSEEvent(
                        event=event_name,
                        data=data,
                        id=self.last_event_id,
                        retry=self.reconnect_time,
                    )
                continue

            if line.startswith(":"):
                continue

            name, sep, value = line.partition(":")
            if sep and value.startswith(" "):
                value = value[1:]

            if name == "event":
                event_name = value
            elif name == "data":
                data += value + "\n"
            elif name == "id":
                if "\x00" not in value:
                    self.last_event_id = value
            elif name == "retry":
                try:
                    self.reconnect_time = int(value)
                except ValueError:
                    _logger.debug("Ignoring malformed retry value: %r", value)

    def __aiter__(self) -> AsyncIterator[SSEEvent]:
        return self

    async def __anext__(self) -> SSEEvent:
        event = await self.read_event()
        if event is None:
            raise StopAsyncIteration
        return event
