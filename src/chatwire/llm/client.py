"""Chat-completions client: request encoding, SSE pumping, response decoding.

The client sits between the engine and the ``Transport``.  It checks that
replies have the expected content type, decodes JSON bodies into
``ChatResponse`` objects and, in streaming mode, folds SSE fragments into a
single accumulated response.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from chatwire.errors import ProtocolError, TransportError
from chatwire.types import ChatRequest, ChatResponse

from .merge import DONE_SENTINEL, merge_response
from .payload_log import NullPayloadLogger, PayloadLogger
from .sse import SSEReader
from .transport import Transport

_logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
STREAM_CONTENT_TYPE = "text/event-stream"

# SSE event names that carry chat fragments; the default name is empty
_DATA_EVENTS = ("", "message")


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _decode_body(raw: str | bytes, what: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Undecodable {what}: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object in {what}, got {type(data).__name__}")
    return data


class ChatClient:
    """Send chat requests over a ``Transport``.

    Parameters
    ----------
    transport:
        Delivers the request; see ``chatwire.llm.transport``.
    payload_logger:
        Optional diagnostic sink for raw payloads.  Defaults to a no-op.
    """

    def __init__(
        self,
        transport: Transport,
        payload_logger: PayloadLogger | None = None,
    ) -> None:
        self._transport = transport
        self._payload_logger: PayloadLogger = payload_logger or NullPayloadLogger()

    def set_payload_logger(self, payload_logger: PayloadLogger | None) -> None:
        self._payload_logger = payload_logger or NullPayloadLogger()

    def _encode(self, request: ChatRequest, stream: bool) -> dict[str, Any]:
        request.stream = stream
        payload = request.to_payload()
        self._payload_logger.log("request", json.dumps(payload, ensure_ascii=False))
        return payload

    # ------------------------------------------------------------------
    # Single-shot
    # ------------------------------------------------------------------

    async def send_request(self, request: ChatRequest) -> ChatResponse:
        """Send *request* without streaming and decode the full body."""
        payload = self._encode(request, stream=False)
        reply = await self._transport.send_single(payload)

        if _media_type(reply.content_type) != JSON_CONTENT_TYPE:
            raise TransportError(
                f"Expected {JSON_CONTENT_TYPE}, got {reply.content_type or 'no content type'}"
            )

        text = reply.body.decode("utf-8", errors="replace")
        self._payload_logger.log("response", text)
        return ChatResponse.from_dict(_decode_body(text, "response body"))

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def send_stream_request(
        self,
        request: ChatRequest,
        fragments: asyncio.Queue[ChatResponse | None] | None = None,
    ) -> ChatResponse:
        """Send *request* in streaming mode and return the merged response.

        Every decoded fragment is put on *fragments* (if given) in arrival
        order, followed by a ``None`` sentinel once the stream is finished,
        whether it ended normally or with an error.  If this coroutine is
        cancelled the sentinel is only added when the queue has room.  The
        response body is always closed before this coroutine returns or
        raises.

        The stream ends at the ``[DONE]`` sentinel or when the source runs
        dry; in both cases whatever was accumulated is returned.  A fragment
        that is not valid JSON aborts the whole request.
        """
        cancelled = False
        try:
            payload = self._encode(request, stream=True)
            stream = await self._transport.send_streaming(payload)
            try:
                if _media_type(stream.content_type) != STREAM_CONTENT_TYPE:
                    raise TransportError(
                        f"Expected stream, got {stream.content_type or 'no content type'}"
                    )
                accumulated = await self._pump(SSEReader(stream.chunks), fragments)
            finally:
                await stream.aclose()
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            if fragments is not None:
                if not cancelled:
                    await fragments.put(None)
                elif not fragments.full():
                    # The reader may be gone: a cancelled pump never blocks here
                    fragments.put_nowait(None)

        if accumulated is None:
            raise ProtocolError("Stream ended before any response fragment")
        return accumulated

    async def _pump(
        self,
        reader: SSEReader,
        fragments: asyncio.Queue[ChatResponse | None] | None,
    ) -> ChatResponse | None:
        accumulated: ChatResponse | None = None
        async for event in reader:
            self._payload_logger.log("chunk", f"{event.event or 'data'}: {event.data}")

            if event.event not in _DATA_EVENTS:
                _logger.debug("Skipping SSE event %r", event.event)
                continue
            if event.data == DONE_SENTINEL:
                break
            if not event.data:
                continue

            fragment = ChatResponse.from_dict(_decode_body(event.data, "stream fragment"))
            accumulated = merge_response(accumulated, fragment)
            if fragments is not None:
                await fragments.put(fragment)
        return accumulated

    async def close(self) -> None:
        await self._transport.close()
