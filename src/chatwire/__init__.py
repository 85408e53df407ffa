"""chatwire: a conversational completion engine for OpenAI-compatible APIs."""

from chatwire.config import ChatConfig, ProfileSpec, SamplingSpec, load_config
from chatwire.core import (
    ConversationEngine,
    EngineState,
    ObjectResult,
    ShapedResult,
    TextResult,
)
from chatwire.errors import (
    ChatwireError,
    ConfigurationError,
    DecodeError,
    ModelError,
    ProtocolError,
    ToolError,
    TransportError,
)
from chatwire.schema import (
    BOOLEAN,
    INTEGER,
    NUMBER,
    STRING,
    ArrayOf,
    Field,
    Record,
    derive,
)
from chatwire.tools import FunctionTool, Tool, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "ArrayOf",
    "BOOLEAN",
    "ChatConfig",
    "ChatwireError",
    "ConfigurationError",
    "ConversationEngine",
    "DecodeError",
    "EngineState",
    "Field",
    "FunctionTool",
    "INTEGER",
    "ModelError",
    "NUMBER",
    "ObjectResult",
    "ProfileSpec",
    "ProtocolError",
    "Record",
    "STRING",
    "SamplingSpec",
    "ShapedResult",
    "TextResult",
    "Tool",
    "ToolError",
    "ToolRegistry",
    "TransportError",
    "derive",
    "load_config",
]
