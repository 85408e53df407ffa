"""ConversationEngine: the turn loop.

    transcript → request → model → evaluate → (tools → request ...) → result

One engine owns one transcript and one tool registry.  ``advance_turn()``
keeps calling the model until it stops, running any tool calls it asks
for in between, and returns the final message decoded by the engine's
result decoder.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import inspect
import logging
from typing import Any, Callable, Iterable

from chatwire.config import ChatConfig, ProfileSpec, SamplingSpec
from chatwire.core.dispatcher import ToolDispatcher
from chatwire.core.results import ResultDecoder, TextResult
from chatwire.core.transcript import Transcript
from chatwire.errors import ConfigurationError, ModelError, ProtocolError
from chatwire.events.bus import EventBus
from chatwire.llm.client import ChatClient
from chatwire.llm.payload_log import LoggingPayloadLogger, PayloadLogger
from chatwire.llm.transport import HttpxTransport
from chatwire.tools.base import Tool
from chatwire.tools.registry import ToolRegistry
from chatwire.types import (
    ROLES,
    ChatEvent,
    ChatRequest,
    ChatResponse,
    EventType,
    Message,
    ProviderPreferences,
    ResponseFormat,
)

_logger = logging.getLogger(__name__)

# Fragments buffered between the stream pump and the delta consumer
_STREAM_QUEUE_SIZE = 64

DeltaHandler = Callable[[str], Any]


class EngineState(enum.Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EVALUATING = "evaluating"
    DONE = "done"
    FAILED = "failed"


class ConversationEngine:
    """Drive a conversation with a chat-completions model.

    Parameters
    ----------
    client:
        Sends requests; see ``chatwire.llm.client.ChatClient``.
    model:
        Model identifier.  Must be set (here or via ``set_model``) before
        the first turn.
    tools:
        Tools the model may call, as a registry or an iterable of tools.
    result:
        How the final message is decoded.  Defaults to plain text.
    sampling:
        Sampling knobs sent with every request.
    provider:
        Provider preferences, passed through untouched.
    event_bus:
        Receives lifecycle, delta and tool events.  Optional.
    stream:
        Stream every request, even when no delta handler is given.
    """

    def __init__(
        self,
        client: ChatClient,
        model: str = "",
        tools: ToolRegistry | Iterable[Tool] | None = None,
        result: ResultDecoder | None = None,
        sampling: SamplingSpec | None = None,
        provider: ProviderPreferences | None = None,
        event_bus: EventBus | None = None,
        stream: bool = False,
        transforms: list[str] | None = None,
        models: list[str] | None = None,
        route: str | None = None,
        extra_params: dict[str, Any] | None = None,
    ) -> None:
        self._client = client
        self._model = model
        if isinstance(tools, ToolRegistry):
            self._registry = tools
        else:
            self._registry = ToolRegistry(tools or ())
        self._result: ResultDecoder = result or TextResult()
        self._response_format = self._result.response_format()
        self._sampling = sampling or SamplingSpec()
        self._provider = provider
        self._event_bus = event_bus or EventBus()
        self._stream = stream
        self._transforms = list(transforms or [])
        self._models = list(models or [])
        self._route = route
        self._extra_params = dict(extra_params or {})

        self._transcript = Transcript()
        self._dispatcher = ToolDispatcher(self._registry, self._transcript, self._event_bus)
        self._state = EngineState.IDLE

    # ------------------------------------------------------------------
    # Construction from config
    # ------------------------------------------------------------------

    @classmethod
    def from_profile(
        cls,
        profile: ProfileSpec,
        tools: ToolRegistry | Iterable[Tool] | None = None,
        result: ResultDecoder | None = None,
        event_bus: EventBus | None = None,
        stream: bool = False,
        payload_logger: PayloadLogger | None = None,
    ) -> ConversationEngine:
        """Build an engine talking HTTP to the provider in *profile*."""
        transport = HttpxTransport(profile.url, profile.api_key, timeout=profile.timeout)
        provider = None
        if profile.require_parameters is not None:
            provider = ProviderPreferences(require_parameters=profile.require_parameters)
        engine = cls(
            ChatClient(transport, payload_logger),
            model=profile.model,
            tools=tools,
            result=result,
            sampling=profile.sampling,
            provider=provider,
            event_bus=event_bus,
            stream=stream,
            transforms=profile.transforms,
            models=profile.models,
            route=profile.route,
            extra_params=profile.extra_params,
        )
        if profile.object_response:
            engine.use_object_response()
        return engine

    @classmethod
    def from_config(
        cls,
        config: ChatConfig,
        tools: ToolRegistry | Iterable[Tool] | None = None,
        result: ResultDecoder | None = None,
        event_bus: EventBus | None = None,
    ) -> ConversationEngine:
        """Build an engine from the active profile of a loaded config."""
        return cls.from_profile(
            config.active_profile,
            tools=tools,
            result=result,
            event_bus=event_bus,
            stream=config.stream,
            payload_logger=LoggingPayloadLogger() if config.log_payloads else None,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def model(self) -> str:
        return self._model

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def set_model(self, model: str) -> None:
        self._model = model

    def use_object_response(self) -> None:
        """Ask for a plain JSON object instead of schema-constrained output.

        Some models don't support JSON Schema, or generate it incorrectly.
        Has no effect for plain-text results.  Only this engine's requests
        change; the result decoder itself is left untouched.
        """
        if isinstance(self._result, TextResult):
            return
        self._response_format = ResponseFormat(type="json_object")

    def add_message(self, role: str, content: str) -> Message:
        return self._transcript.add(role, content)

    def build_request(self, stream: bool = False) -> ChatRequest:
        """Snapshot the transcript and settings into a request."""
        tools = self._registry.get_openai_schemas()
        return ChatRequest(
            messages=list(self._transcript.messages),
            model=self._model,
            response_format=self._response_format,
            stream=stream,
            tools=tools,
            tool_choice="auto" if tools else None,
            transforms=self._transforms,
            models=self._models,
            route=self._route,
            provider=self._provider,
            extra_params=self._extra_params,
            **self._sampling.as_kwargs(),
        )

    async def advance_turn(
        self,
        on_delta: DeltaHandler | None = None,
        stream: bool | None = None,
    ) -> Any:
        """Run the model until it stops and return the decoded result.

        Parameters
        ----------
        on_delta:
            Called with each streamed text delta, in order, before this
            coroutine returns.  May be sync or async.  Passing a handler
            turns streaming on.
        stream:
            Override the engine's streaming default for this call.

        Raises
        ------
        ConfigurationError
            No model is set.
        ModelError, ProtocolError, TransportError, ToolError
            The turn failed; the transcript keeps everything appended so far.
        """
        if not self._model:
            raise ConfigurationError("Model not set")

        use_stream = on_delta is not None or (self._stream if stream is None else stream)
        await self._emit(EventType.TURN_STARTED, {
            "model": self._model,
            "messages": len(self._transcript),
        })

        try:
            result = await self._loop(use_stream, on_delta)
        except Exception as e:
            self._state = EngineState.FAILED
            _logger.error("Turn failed: %s: %s", type(e).__name__, e)
            await self._emit(EventType.TURN_FAILED, {
                "error": f"{type(e).__name__}: {e}",
            })
            raise

        self._state = EngineState.DONE
        await self._emit(EventType.TURN_DONE, {"messages": len(self._transcript)})
        return result

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def _loop(self, use_stream: bool, on_delta: DeltaHandler | None) -> Any:
        while True:
            self._state = EngineState.AWAITING_MODEL
            request = self.build_request(stream=use_stream)
            await self._emit(EventType.LLM_REQUEST, {
                "model": request.model,
                "messages": len(request.messages),
                "stream": use_stream,
            })

            if use_stream:
                response = await self._request_streaming(request, on_delta)
            else:
                response = await self._client.send_request(request)

            self._state = EngineState.EVALUATING
            message, finish_reason = self._evaluate(response)
            self._transcript.append(message)

            await self._emit(EventType.LLM_RESPONSE, {
                "model": response.model,
                "finish_reason": finish_reason,
                "tool_calls": len(message.tool_calls),
                "content_length": len(message.content),
                "usage": response.usage.to_dict() if response.usage else {},
            })

            reason = finish_reason.lower()
            if reason in ("stop", ""):
                if not reason:
                    # Some providers omit finish_reason when streaming
                    _logger.debug("Empty finish reason treated as stop")
                return self._result.decode(message.content)
            if reason == "tool_calls":
                await self._dispatcher.dispatch(message.tool_calls)
                continue
            raise ProtocolError(f"Unknown finish reason {finish_reason!r}")

    def _evaluate(self, response: ChatResponse) -> tuple[Message, str]:
        """Check *response* for errors and pick the message to act on."""
        if response.code != 0:
            detail = f"Error code {response.code}"
            if response.error_message:
                detail += f": {response.error_message}"
            raise ModelError(detail, code=response.code)
        if response.error_message:
            raise ModelError(f"Error: {response.error_message}")
        if not response.choices:
            raise ProtocolError("No choices")
        if len(response.choices) > 1:
            # Only the first choice drives the conversation
            _logger.warning(
                "Got %d choices, using the first and dropping the rest",
                len(response.choices),
            )

        choice = response.choices[0]
        message = choice.message
        if message is None:
            raise ProtocolError("No message")
        if not message.role:
            message = dataclasses.replace(message, role="assistant")
        elif message.role not in ROLES:
            raise ProtocolError(f"Unexpected role {message.role!r} in reply")
        return message, choice.finish_reason

    async def _request_streaming(
        self,
        request: ChatRequest,
        on_delta: DeltaHandler | None,
    ) -> ChatResponse:
        """Stream *request*, forwarding deltas while the pump task merges."""
        fragments: asyncio.Queue[ChatResponse | None] = asyncio.Queue(
            maxsize=_STREAM_QUEUE_SIZE,
        )
        pump = asyncio.create_task(self._client.send_stream_request(request, fragments))
        try:
            while True:
                fragment = await fragments.get()
                if fragment is None:
                    break
                if not fragment.choices:
                    continue
                delta = fragment.choices[0].delta
                text = delta.content if delta is not None else ""
                await self._emit(EventType.LLM_DELTA, {"content": text})
                if on_delta is not None:
                    outcome = on_delta(text)
                    if inspect.isawaitable(outcome):
                        await outcome
        except BaseException:
            # The consumer failed: stop the pump so it releases the stream
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
            raise
        return await pump

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        await self._event_bus.emit(ChatEvent(type=event_type, data=data))
