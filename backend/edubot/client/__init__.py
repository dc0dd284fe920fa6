"""Client for the streamed chat endpoint: parse, reveal and commit replies."""

from edubot.client.reveal import (
    EMPTY_RESPONSE,
    ERROR_TEMPLATE,
    TranscriptMessage,
    TypewriterTranscript,
)
from edubot.client.session import ChatSession
from edubot.client.sse_parser import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    StreamEventParser,
    StreamParseError,
)
from edubot.client.stream_consumer import (
    ChatStreamConsumer,
    ChatStreamError,
    StreamHandlers,
    StreamResult,
)

__all__ = [
    "EMPTY_RESPONSE",
    "ERROR_TEMPLATE",
    "ChatSession",
    "ChatStreamConsumer",
    "ChatStreamError",
    "ChunkEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "StreamEventParser",
    "StreamParseError",
    "StreamHandlers",
    "StreamResult",
    "TranscriptMessage",
    "TypewriterTranscript",
]
