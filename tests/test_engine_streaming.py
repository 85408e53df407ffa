"""Tests for streamed turns: delta forwarding, merging and cleanup."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from chatwire.core.engine import ConversationEngine, EngineState
from chatwire.errors import ModelError, ProtocolError
from chatwire.events import EventBus
from chatwire.llm.client import ChatClient
from chatwire.llm.transport import SingleResponse, StreamResponse
from chatwire.schema import INTEGER, Field, Record
from chatwire.tools import FunctionTool
from chatwire.types import EventType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sse(*items: Any, done: bool = True) -> bytes:
    out = []
    for item in items:
        data = item if isinstance(item, str) else json.dumps(item)
        out.append(f"data: {data}\n\n")
    if done:
        out.append("data: [DONE]\n\n")
    return "".join(out).encode()


def _delta(content: str = "", finish_reason: str | None = None, **delta) -> dict:
    delta["content"] = content
    return {
        "id": "gen-1",
        "object": "chat.completion.chunk",
        "model": "test-model",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


class StreamingTransport:
    """Replays one SSE body per streamed request."""

    def __init__(self, *bodies: bytes) -> None:
        self.bodies = list(bodies)
        self.payloads: list[dict] = []
        self.opened = 0
        self.closed = 0
        self.single_calls = 0

    async def send_single(self, payload: dict) -> SingleResponse:
        self.single_calls += 1
        body = {"choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": "single"}}]}
        return SingleResponse(json.dumps(body).encode(), "application/json")

    async def send_streaming(self, payload: dict) -> StreamResponse:
        self.payloads.append(payload)
        self.opened += 1
        body = self.bodies.pop(0)

        async def chunks():
            # Split into small pieces to exercise line reassembly
            for i in range(0, len(body), 7):
                yield body[i:i + 7]

        async def close() -> None:
            self.closed += 1

        return StreamResponse("text/event-stream", chunks(), close)

    async def close(self) -> None:
        pass


def _make_engine(transport: StreamingTransport, **kwargs) -> ConversationEngine:
    engine = ConversationEngine(ChatClient(transport), model="test-model", **kwargs)
    engine.add_message("user", "Count to three")
    return engine


# ---------------------------------------------------------------------------
# Delta forwarding
# ---------------------------------------------------------------------------

class TestDeltas:
    async def test_deltas_forwarded_in_order(self):
        transport = StreamingTransport(_sse(
            _delta("One", role="assistant"),
            _delta(", two"),
            _delta(", three", "stop"),
        ))
        engine = _make_engine(transport)
        deltas: list[str] = []

        result = await engine.advance_turn(on_delta=deltas.append)

        assert deltas == ["One", ", two", ", three"]
        assert result == "One, two, three"
        assert "".join(deltas) == result
        assert engine.transcript.last.content == result
        assert engine.state == EngineState.DONE
        assert transport.payloads[0]["stream"] is True
        assert transport.closed == transport.opened == 1

    async def test_async_delta_handler(self):
        transport = StreamingTransport(_sse(_delta("a"), _delta("b", "stop")))
        engine = _make_engine(transport)
        seen: list[str] = []

        async def on_delta(text: str) -> None:
            seen.append(text)

        await engine.advance_turn(on_delta=on_delta)
        assert seen == ["a", "b"]

    async def test_delta_events(self):
        bus = EventBus()
        transport = StreamingTransport(_sse(_delta("a"), _delta("b", "stop")))
        engine = _make_engine(transport, event_bus=bus)
        await engine.advance_turn(stream=True)
        deltas = [e.data["content"] for e in bus.history if e.type == EventType.LLM_DELTA]
        assert deltas == ["a", "b"]

    async def test_stream_default_and_override(self):
        transport = StreamingTransport(_sse(_delta("streamed", "stop")))
        engine = _make_engine(transport, stream=True)
        assert await engine.advance_turn() == "streamed"

        engine.add_message("user", "Again")
        assert await engine.advance_turn(stream=False) == "single"
        assert transport.single_calls == 1

    async def test_missing_finish_reason_treated_as_stop(self):
        transport = StreamingTransport(_sse(_delta("a"), _delta("b"), done=False))
        engine = _make_engine(transport)
        assert await engine.advance_turn(stream=True) == "ab"


# ---------------------------------------------------------------------------
# Streamed tool calls
# ---------------------------------------------------------------------------

class TestStreamedToolCalls:
    async def test_tool_call_split_across_fragments(self):
        transport = StreamingTransport(
            _sse(
                _delta(role="assistant", tool_calls=[{
                    "index": 0, "id": "c1", "type": "function",
                    "function": {"name": "add", "arguments": '{"x": 1,'},
                }]),
                _delta(tool_calls=[{"index": 0, "function": {"arguments": ' "y": 2}'}}]),
                _delta(finish_reason="tool_calls"),
            ),
            _sse(_delta("It is 3", "stop")),
        )
        add = FunctionTool(
            "add", "Add", lambda a: a["x"] + a["y"],
            parameters=Record((Field("x", INTEGER), Field("y", INTEGER))),
        )
        engine = _make_engine(transport, tools=[add])

        assert await engine.advance_turn(stream=True) == "It is 3"
        assert [m.role for m in engine.transcript] == ["user", "assistant", "tool", "assistant"]
        assert engine.transcript[1].tool_calls[0].arguments == '{"x": 1, "y": 2}'
        assert engine.transcript[2].content == "3"

        second = transport.payloads[1]
        assert second["messages"][2] == {"role": "tool", "content": "3", "tool_call_id": "c1"}
        assert transport.closed == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestStreamingFailures:
    async def test_consumer_failure_stops_stream(self):
        transport = StreamingTransport(_sse(_delta("a"), _delta("b"), _delta("c", "stop")))
        engine = _make_engine(transport)

        def on_delta(text: str) -> None:
            raise RuntimeError("display gone")

        with pytest.raises(RuntimeError, match="display gone"):
            await engine.advance_turn(on_delta=on_delta)
        assert transport.closed == 1
        assert engine.state == EngineState.FAILED
        assert len(engine.transcript) == 1

    async def test_slow_consumer_failure_with_full_queue(self):
        # More fragments than the engine buffers, so the pump is parked on a full queue
        transport = StreamingTransport(_sse(*(_delta("x") for _ in range(200)), _delta("", "stop")))
        engine = _make_engine(transport)
        seen: list[str] = []

        async def on_delta(text: str) -> None:
            await asyncio.sleep(0)
            seen.append(text)
            if len(seen) == 50:
                raise RuntimeError("display gone")

        with pytest.raises(RuntimeError, match="display gone"):
            await asyncio.wait_for(engine.advance_turn(on_delta=on_delta), timeout=3)
        assert len(seen) == 50
        assert transport.closed == 1
        assert engine.state == EngineState.FAILED

    async def test_cancelled_turn_releases_stream(self):
        transport = StreamingTransport(_sse(*(_delta("x") for _ in range(200))))
        engine = _make_engine(transport)
        started = asyncio.Event()

        async def on_delta(text: str) -> None:
            started.set()
            await asyncio.Event().wait()

        turn = asyncio.create_task(engine.advance_turn(on_delta=on_delta))
        await started.wait()
        turn.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(turn, timeout=3)
        assert transport.closed == 1

    async def test_corrupt_fragment(self):
        transport = StreamingTransport(_sse(_delta("a"), "{not json"))
        engine = _make_engine(transport)
        deltas: list[str] = []
        with pytest.raises(ProtocolError):
            await engine.advance_turn(on_delta=deltas.append)
        assert deltas == ["a"]
        assert transport.closed == 1
        assert len(engine.transcript) == 1

    async def test_error_in_stream(self):
        transport = StreamingTransport(_sse({"choices": [], "error": {"message": "upstream", "code": 502}}))
        engine = _make_engine(transport)
        with pytest.raises(ModelError, match="502"):
            await engine.advance_turn(stream=True)

    async def test_unknown_finish_reason_keeps_message(self):
        transport = StreamingTransport(_sse(_delta("Partial", "length")))
        engine = _make_engine(transport)
        with pytest.raises(ProtocolError, match="length"):
            await engine.advance_turn(stream=True)
        assert engine.transcript.last.content == "Partial"
