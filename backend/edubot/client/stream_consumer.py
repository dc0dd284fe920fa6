"""HTTP side of the chat client: POST a message and consume the SSE reply."""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from edubot.client.sse_parser import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    StreamEventParser,
    StreamParseError,
)

logger = logging.getLogger(__name__)

STREAM_PATH = "/chat/stream"


class ChatStreamError(Exception):
    """The stream could not be opened or broke before a terminal event."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class StreamHandlers:
    """
    Callbacks for one streamed turn. Each may be a plain function or a coroutine function.

    - on_chunk(text): a new delta arrived
    - on_finish(final_text, thread_id): the server signalled completion
    - on_error(exc): the turn failed; also called before ``ChatStreamError`` is raised
    """

    on_chunk: Callable[[str], Any] | None = None
    on_finish: Callable[[str, str | None], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None


@dataclass
class StreamResult:
    text: str
    thread_id: str | None
    completed: bool
    error: str | None = None


async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ChatStreamConsumer:
    """Sends chat messages over an ``httpx.AsyncClient`` pointed at the API."""

    def __init__(self, client: httpx.AsyncClient, token: str | None = None, path: str = STREAM_PATH):
        self.client = client
        self.token = token
        self.path = path

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(
        self,
        message: str,
        thread_id: str | None = None,
        handlers: StreamHandlers | None = None,
    ) -> StreamResult:
        """
        Stream one turn.

        A mid-stream ``error`` frame is reported through ``on_error`` and
        returned as an incomplete result. Failing to open the stream, a
        transport error, a malformed frame or a stream that ends without a
        terminal frame raises ``ChatStreamError`` after ``on_error`` has
        been called.
        """
        handlers = handlers or StreamHandlers()
        try:
            return await self._consume(message, thread_id, handlers)
        except ChatStreamError as exc:
            await _notify(handlers.on_error, exc)
            raise
        except httpx.HTTPError as exc:
            logger.warning("Chat stream transport error: %s", exc)
            error = ChatStreamError(f"Chat stream failed: {exc}")
            await _notify(handlers.on_error, error)
            raise error from exc
        except StreamParseError as exc:
            error = ChatStreamError("Malformed stream frame")
            await _notify(handlers.on_error, error)
            raise error from exc

    async def _consume(self, message: str, thread_id: str | None, handlers: StreamHandlers) -> StreamResult:
        body: dict[str, Any] = {"message": message}
        if thread_id:
            body["threadId"] = thread_id

        parser = StreamEventParser()
        parts: list[str] = []

        async with self.client.stream("POST", self.path, json=body, headers=self._headers()) as response:
            if not response.is_success:
                await response.aread()
                raise ChatStreamError("Failed to start chat stream", status_code=response.status_code)

            async for data in response.aiter_bytes():
                for event in parser.feed(data):
                    result = await self._dispatch(event, parts, thread_id, handlers)
                    if result is not None:
                        return result

            for event in parser.flush():
                result = await self._dispatch(event, parts, thread_id, handlers)
                if result is not None:
                    return result

        raise ChatStreamError("Chat stream ended before completion")

    async def _dispatch(
        self,
        event: ChunkEvent | DoneEvent | ErrorEvent,
        parts: list[str],
        thread_id: str | None,
        handlers: StreamHandlers,
    ) -> StreamResult | None:
        if isinstance(event, ChunkEvent):
            parts.append(event.text)
            await _notify(handlers.on_chunk, event.text)
            return None

        if isinstance(event, DoneEvent):
            text = event.text or "".join(parts)
            final_thread = event.thread_id or thread_id
            await _notify(handlers.on_finish, text, final_thread)
            return StreamResult(text=text, thread_id=final_thread, completed=True)

        parts.clear()
        await _notify(handlers.on_error, ChatStreamError(event.message))
        return StreamResult(text="", thread_id=thread_id, completed=False, error=event.message)
