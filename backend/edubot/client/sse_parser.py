"""
Incremental parser for the chat stream body.

Bytes arrive in arbitrary reads: a line, a JSON payload or even a single
multi-byte character can be split across two of them. The parser keeps the
undecoded tail and the unterminated last line between calls to ``feed``.
A payload that is not valid JSON raises ``StreamParseError``: a corrupt
frame means the reply can no longer be trusted.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_LITERAL = "[DONE]"


@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class DoneEvent:
    """Terminal event. ``text`` is set only when the server declares the full reply."""

    thread_id: str | None = None
    text: str | None = None


@dataclass(frozen=True)
class ErrorEvent:
    message: str


class StreamParseError(ValueError):
    """A ``data:`` line whose payload is not valid JSON."""


StreamEvent = ChunkEvent | DoneEvent | ErrorEvent


def parse_payload(payload: Any) -> StreamEvent | None:
    """Map one decoded JSON frame to an event, or None if it carries nothing usable."""
    if not isinstance(payload, dict):
        return None
    chunk = payload.get("chunk")
    if isinstance(chunk, str) and chunk:
        return ChunkEvent(chunk)
    if payload.get("done"):
        thread_id = payload.get("threadId")
        text = payload.get("text")
        return DoneEvent(
            thread_id=str(thread_id) if thread_id else None,
            text=text if isinstance(text, str) and text else None,
        )
    if payload.get("error"):
        return ErrorEvent(str(payload["error"]))
    return None


class StreamEventParser:
    """Turns raw response bytes into stream events, one ``feed`` per network read."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[StreamEvent]:
        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[StreamEvent]:
        """Parse whatever is left once the connection has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: list[str]) -> list[StreamEvent]:
        events = []
        for line in lines:
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def _parse_line(self, line: str) -> StreamEvent | None:
        line = line.strip()
        # Blank separators, ": comment" keep-alives and other fields
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX):].strip()
        if not data:
            return None
        if data == DONE_LITERAL:
            return DoneEvent()

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Unparseable stream frame: %.200s", data)
            raise StreamParseError(f"Malformed stream frame: {e.msg}") from e
        return parse_payload(payload)
