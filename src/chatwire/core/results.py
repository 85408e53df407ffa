"""Result decoders: how the final assistant message becomes a value.

A decoder is picked once, when the engine is built.  It supplies the
``response_format`` sent with every request and turns the content of the
final message into the caller's result.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Protocol

from chatwire.errors import DecodeError
from chatwire.schema import Record, Shape, conforms, derive
from chatwire.types import ResponseFormat


class ResultDecoder(Protocol):
    def response_format(self) -> ResponseFormat:
        ...

    def decode(self, content: str) -> Any:
        ...


def _load_json(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Response is not valid JSON: {e}") from e


class TextResult:
    """Plain text: the content is the result."""

    def response_format(self) -> ResponseFormat:
        return ResponseFormat(type="text")

    def decode(self, content: str) -> str:
        return content


class ObjectResult:
    """Any JSON object, with no schema sent to the provider."""

    def response_format(self) -> ResponseFormat:
        return ResponseFormat(type="json_object")

    def decode(self, content: str) -> dict[str, Any]:
        data = _load_json(content)
        if not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
        return data


class ShapedResult:
    """JSON matching *shape*, requested as schema-constrained output.

    If *factory* is given it builds the final value from the decoded JSON,
    e.g. ``ShapedResult(shape, lambda d: Reply(**d))``.  With
    ``object_only=True`` the provider is only asked for a JSON object, for
    models that do not support JSON Schema or generate it incorrectly.
    """

    def __init__(
        self,
        shape: Shape,
        factory: Callable[[Any], Any] | None = None,
        object_only: bool = False,
    ) -> None:
        self.shape = shape
        self.factory = factory
        self.object_only = object_only

    def response_format(self) -> ResponseFormat:
        if self.object_only:
            return ResponseFormat(type="json_object")
        return ResponseFormat(type="json_schema", schema=derive(self.shape))

    def decode(self, content: str) -> Any:
        data = _load_json(content)
        if isinstance(self.shape, Record) and not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
        if not conforms(self.shape, data):
            raise DecodeError("Response does not match the requested shape")
        if self.factory is None:
            return data
        try:
            return self.factory(data)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Could not build result: {e}") from e
