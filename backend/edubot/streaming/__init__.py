"""Server push for streamed chat turns."""

from edubot.streaming.turn_locks import TurnLocks
from edubot.streaming.turn_stream import (
    FRAME_SEPARATOR,
    TurnState,
    TurnStream,
    chunk_event,
    done_event,
    encode_event,
    error_event,
)

__all__ = [
    "FRAME_SEPARATOR",
    "TurnLocks",
    "TurnState",
    "TurnStream",
    "chunk_event",
    "done_event",
    "encode_event",
    "error_event",
]
