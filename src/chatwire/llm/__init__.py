"""LLM wire layer: transport, SSE reader, fragment merging, client."""

from chatwire.llm.client import ChatClient
from chatwire.llm.merge import DONE_SENTINEL, merge_response
from chatwire.llm.payload_log import LoggingPayloadLogger, NullPayloadLogger, PayloadLogger
from chatwire.llm.sse import SSEEvent, SSEReader
from chatwire.llm.transport import HttpxTransport, SingleResponse, StreamResponse, Transport

__all__ = [
    "ChatClient",
    "DONE_SENTINEL",
    "HttpxTransport",
    "LoggingPayloadLogger",
    "NullPayloadLogger",
    "PayloadLogger",
    "SSEEvent",
    "SSEReader",
    "SingleResponse",
    "StreamResponse",
    "Transport",
    "merge_response",
]
