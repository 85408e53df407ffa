"""Tool abstract base class and a function-backed implementation."""

from __future__ import annotations

import dataclasses
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Callable

from chatwire.schema import ParamDescriptor, Record, Shape, conforms, derive

INVALID_ARGUMENTS = {"error": "Invalid arguments"}


def encode_result(result: Any) -> str:
    """JSON-encode a tool result; dataclass instances are converted first."""
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        result = dataclasses.asdict(result)
    return json.dumps(result, ensure_ascii=False)


class Tool(ABC):
    """Base class for functions the model may call.

    Subclasses set ``name``, ``description`` and ``parameters`` (a shape
    from ``chatwire.schema``) and implement ``execute()``, which receives
    the decoded argument object and returns any JSON-encodable value.
    """

    name: str
    description: str = ""
    parameters: Shape = Record()

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> Any:
        """Run the tool with decoded *arguments*."""

    def parameter_descriptor(self) -> ParamDescriptor:
        return derive(self.parameters)

    async def call(self, raw_arguments: str) -> str:
        """Decode *raw_arguments*, execute, and encode the result.

        Arguments that are not valid JSON, or do not fit ``parameters``,
        produce an error payload for the model instead of an exception.
        """
        try:
            arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
        except json.JSONDecodeError:
            return encode_result(INVALID_ARGUMENTS)
        if not isinstance(arguments, dict) or not conforms(self.parameters, arguments):
            return encode_result(INVALID_ARGUMENTS)

        return encode_result(await self.execute(arguments))

    def to_openai_schema(self) -> dict[str, Any]:
        """Convert to OpenAI function-calling format."""
        function: dict[str, Any] = {
            "name": self.name,
            "parameters": self.parameter_descriptor().to_dict(),
        }
        if self.description:
            function["description"] = self.description
        return {"type": "function", "function": function}


class FunctionTool(Tool):
    """Expose a plain function (sync or async) as a tool.

    Usage::

        def lookup(args):
            return {"temperature": 21}

        tool = FunctionTool(
            "weather", "Current weather for a city", lookup,
            parameters=Record((Field("city", STRING),)),
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        handler: Callable[[dict[str, Any]], Any],
        parameters: Shape = Record(),
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters
        self._handler = handler

    async def execute(self, arguments: dict[str, Any]) -> Any:
        result = self._handler(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result
