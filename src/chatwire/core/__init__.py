"""Core conversation components for chatwire."""

from chatwire.core.dispatcher import ToolDispatcher
from chatwire.core.engine import ConversationEngine, EngineState
from chatwire.core.results import ObjectResult, ResultDecoder, ShapedResult, TextResult
from chatwire.core.transcript import Transcript

__all__ = [
    "ConversationEngine",
    "EngineState",
    "ObjectResult",
    "ResultDecoder",
    "ShapedResult",
    "TextResult",
    "ToolDispatcher",
    "Transcript",
]
