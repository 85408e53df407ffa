"""Shared data types for chatwire: wire messages, responses and events."""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass, field
from typing import Any

from chatwire.schema import ParamDescriptor

ROLES = ("system", "user", "assistant", "tool")


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCall:
    """A model-issued request to call a registered function.

    ``arguments`` stays raw JSON text until the matching tool decodes it.
    """

    id: str = ""
    name: str = ""
    arguments: str = ""
    index: int = 0
    type: str = "function"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ToolCall:
        func = raw.get("function") or {}
        arguments = func.get("arguments", "")
        if not isinstance(arguments, str):
            # Some providers send already-decoded argument objects
            arguments = json.dumps(arguments)
        return cls(
            id=raw.get("id") or "",
            name=func.get("name") or "",
            arguments=arguments or "",
            index=_as_int(raw.get("index")),
            type=raw.get("type") or "function",
        )


@dataclass(frozen=True)
class Message:
    """One turn of a conversation."""

    role: str
    content: str = ""
    name: str = ""
    refusal: str = ""
    tool_call_id: str = ""
    tool_calls: tuple[ToolCall, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.refusal:
            data["refusal"] = self.refusal
        if self.name:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Message:
        content = raw.get("content") or ""
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return cls(
            role=raw.get("role") or "",
            content=content,
            name=raw.get("name") or "",
            refusal=raw.get("refusal") or "",
            tool_call_id=raw.get("tool_call_id") or "",
            tool_calls=tuple(
                ToolCall.from_dict(tc) for tc in raw.get("tool_calls") or ()
            ),
        )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Usage:
        return cls(
            prompt_tokens=_as_int(raw.get("prompt_tokens")),
            completion_tokens=_as_int(raw.get("completion_tokens")),
            total_tokens=_as_int(raw.get("total_tokens")),
        )


@dataclass
class Choice:
    """One parallel completion inside a response.

    Streaming fragments carry ``delta``; complete turns carry ``message``.
    """

    index: int = 0
    finish_reason: str = ""
    delta: Message | None = None
    message: Message | None = None
    logprobs: Any = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Choice:
        delta = raw.get("delta")
        message = raw.get("message")
        return cls(
            index=_as_int(raw.get("index")),
            finish_reason=raw.get("finish_reason") or "",
            delta=Message.from_dict(delta) if isinstance(delta, dict) else None,
            message=Message.from_dict(message) if isinstance(message, dict) else None,
            logprobs=raw.get("logprobs"),
        )


@dataclass
class ChatResponse:
    """A chat-completion body, or one streamed fragment of it."""

    id: str = ""
    model: str = ""
    object: str = ""
    created: int = 0
    choices: list[Choice] = field(default_factory=list)
    usage: Usage | None = None
    system_fingerprint: str = ""
    error_message: str = ""
    code: int = 0

    @property
    def has_error(self) -> bool:
        return self.code != 0 or bool(self.error_message)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ChatResponse:
        error = raw.get("error")
        error_message = ""
        code = _as_int(raw.get("code"))
        if isinstance(error, dict):
            error_message = str(error.get("message") or "")
            if not code:
                code = _as_int(error.get("code"))
        elif error:
            error_message = str(error)

        usage = raw.get("usage")
        return cls(
            id=raw.get("id") or "",
            model=raw.get("model") or "",
            object=raw.get("object") or "",
            created=_as_int(raw.get("created")),
            choices=[Choice.from_dict(c) for c in raw.get("choices") or ()],
            usage=Usage.from_dict(usage) if isinstance(usage, dict) else None,
            system_fingerprint=raw.get("system_fingerprint") or "",
            error_message=error_message,
            code=code,
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass
class ResponseFormat:
    """Response-format selector: ``text``, ``json_object`` or ``json_schema``."""

    type: str = "text"
    schema: ParamDescriptor | None = None
    name: str = "response"
    strict: bool = True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.type == "json_schema" and self.schema is not None:
            data["json_schema"] = {
                "name": self.name,
                "strict": self.strict,
                "schema": self.schema.to_dict(),
            }
        return data


@dataclass
class ProviderPreferences:
    """OpenRouter provider preferences, passed through untouched."""

    require_parameters: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.require_parameters is not None:
            data["require_parameters"] = self.require_parameters
        return data


# Sampling knobs that go on the wire only when set
_OPTIONAL_FIELDS = (
    "stop",
    "max_tokens",
    "temperature",
    "top_p",
    "top_k",
    "frequency_penalty",
    "presence_penalty",
    "repetition_penalty",
    "seed",
    "logit_bias",
    "route",
)


@dataclass
class ChatRequest:
    """Everything sent for one chat-completions call."""

    messages: list[Message] = field(default_factory=list)
    model: str = ""
    response_format: ResponseFormat | None = None
    stream: bool = False
    stop: str | list[str] | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    repetition_penalty: float | None = None
    seed: int | None = None
    logit_bias: dict[int, float] | None = None
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: str | dict[str, Any] | None = None
    transforms: list[str] = field(default_factory=list)
    models: list[str] = field(default_factory=list)
    route: str | None = None
    provider: ProviderPreferences | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body, omitting every knob left at its default."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.response_format is not None:
            payload["response_format"] = self.response_format.to_dict()
        if self.stream:
            payload["stream"] = True
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        if self.tools:
            payload["tools"] = list(self.tools)
            if self.tool_choice:
                payload["tool_choice"] = self.tool_choice
        if self.transforms:
            payload["transforms"] = list(self.transforms)
        if self.models:
            payload["models"] = list(self.models)
        if self.provider is not None:
            prefs = self.provider.to_dict()
            if prefs:
                payload["provider"] = prefs
        if self.extra_params:
            payload.update(self.extra_params)
        return payload


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events published by the engine on its EventBus."""

    TURN_STARTED = "turn.started"
    TURN_DONE = "turn.done"
    TURN_FAILED = "turn.failed"

    LLM_REQUEST = "llm.request"
    LLM_RESPONSE = "llm.response"
    LLM_DELTA = "llm.delta"

    TOOL_EXECUTING = "tool.executing"
    TOOL_EXECUTED = "tool.executed"
    TOOL_ERROR = "tool.error"


@dataclass
class ChatEvent:
    """Event emitted through the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
