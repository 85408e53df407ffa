"""Exception hierarchy for chatwire.

Every failure the engine surfaces derives from :class:`ChatwireError`, so
callers can catch one type at the top-level conversation driver and decide
whether to abort or resume.  Nothing here is retried automatically.
"""

from __future__ import annotations


class ChatwireError(Exception):
    """Base class for all chatwire errors."""


class ConfigurationError(ChatwireError):
    """The engine was asked to do something it is not configured for."""


class TransportError(ChatwireError):
    """The request could not be delivered or the reply was not usable.

    Covers connection failures, non-2xx statuses, and replies with an
    unexpected content type.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(ChatwireError):
    """The provider replied with something that violates the chat protocol."""


class DecodeError(ProtocolError):
    """Final message content could not be decoded into the requested result."""


class ModelError(ChatwireError):
    """The provider reported an error inside an otherwise valid response."""

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.code = code


class ToolError(ChatwireError):
    """A tool call could not be dispatched (e.g. unknown function name)."""

    def __init__(self, message: str, tool_name: str = "") -> None:
        super().__init__(message)
        self.tool_name = tool_name
