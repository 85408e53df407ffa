"""Optional sink for raw request/response/chunk payloads."""

from __future__ import annotations

import json
import logging
from typing import Protocol


class PayloadLogger(Protocol):
    def log(self, kind: str, payload: str) -> None:
        ...


class NullPayloadLogger:
    """Default logger: drops everything."""

    def log(self, kind: str, payload: str) -> None:
        return None


def _pretty(payload: str) -> str:
    text = payload.strip()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text
    if not isinstance(data, dict):
        return text
    return json.dumps(data, indent=2, ensure_ascii=False)


class LoggingPayloadLogger:
    """Route payloads to a standard :mod:`logging` logger.

    JSON objects are re-indented for readability; anything else is logged
    as-is.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.DEBUG,
    ) -> None:
        self._logger = logger or logging.getLogger("chatwire.payload")
        self._level = level

    def log(self, kind: str, payload: str) -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        self._logger.log(self._level, "%s: %s", kind.capitalize(), _pretty(payload))
