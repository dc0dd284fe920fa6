"""
Server side of one streamed chat turn.

A producer task drives the completion and pushes frames onto a queue; the
SSE response drains the queue. Keeping production out of the response
generator means a client disconnect (which cancels the response) never
interrupts persistence: the producer notices the close, stops pulling
deltas, saves whatever text it has and exits.

States: OPEN -> CHUNK* -> DONE | ERROR -> CLOSED, or straight to CLOSED on
cancellation.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sse_starlette.sse import ServerSentEvent

from edubot.db.models import ChatRole, User
from edubot.errors import UpstreamUnavailable
from edubot.services.chat_service import ChatService
from edubot.streaming.turn_locks import TurnLocks

logger = logging.getLogger(__name__)

FRAME_SEPARATOR = "\n"


class TurnState(str, Enum):
    OPEN = "open"
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"
    CLOSED = "closed"


def encode_event(payload: dict) -> ServerSentEvent:
    """Frame one JSON payload as ``data: <json>`` followed by a blank line."""
    return ServerSentEvent(data=json.dumps(payload), sep=FRAME_SEPARATOR)


def chunk_event(text: str) -> ServerSentEvent:
    return encode_event({"chunk": text})


def done_event(thread_id: UUID) -> ServerSentEvent:
    return encode_event({"threadId": str(thread_id), "done": True})


def error_event(message: str = UpstreamUnavailable.default_detail) -> ServerSentEvent:
    return encode_event({"error": message})


class TurnStream:
    """One in-flight streamed turn on a thread."""

    def __init__(
        self,
        chat: ChatService,
        session_factory: async_sessionmaker[AsyncSession],
        locks: TurnLocks,
        user: User,
        thread_id: UUID,
        message: str,
    ):
        self.chat = chat
        self.session_factory = session_factory
        self.locks = locks
        self.user = user
        self.thread_id = thread_id
        self.message = message

        self.state = TurnState.OPEN
        self.parts: list[str] = []
        self._queue: asyncio.Queue[ServerSentEvent | None] = asyncio.Queue()
        self._producer: asyncio.Task | None = None
        self._pull_task: asyncio.Task | None = None
        self._cancelled = False
        self._closed = False

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        """Frames for the response body. Ends after the terminal frame or on close."""
        if self._producer is None and not self._closed:
            self._producer = asyncio.create_task(self._produce())
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            self.close()

    def close(self) -> None:
        """
        Stop the turn. Idempotent.

        If a completion is streaming, the delta pull is cancelled and the
        producer persists the partial text before exiting.
        """
        if self._closed:
            return
        self._closed = True
        if self.state not in (TurnState.DONE, TurnState.ERROR):
            self._cancelled = True
            if self._pull_task is not None and not self._pull_task.done():
                self._pull_task.cancel()
        if self._producer is None:
            self.locks.release(self.thread_id)
            self._queue.put_nowait(None)
        self.state = TurnState.CLOSED

    async def aclose(self) -> None:
        self.close()

    async def wait_finished(self) -> None:
        """Wait for the producer (and its final persistence) to finish."""
        if self._producer is not None:
            await asyncio.gather(self._producer, return_exceptions=True)

    def _push(self, frame: ServerSentEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(frame)

    async def _pull(self, deltas: AsyncIterator[str]) -> None:
        async for delta in deltas:
            if self._cancelled:
                break
            self.parts.append(delta)
            self.state = TurnState.CHUNK
            self._push(chunk_event(delta))

    async def _produce(self) -> None:
        try:
            async with self.session_factory() as db:
                await self._run(db)
        except Exception:
            logger.exception("Chat turn on thread %s failed outside the stream", self.thread_id)
        finally:
            self.locks.release(self.thread_id)
            self._queue.put_nowait(None)

    async def _run(self, db: AsyncSession) -> None:
        try:
            # The user message is durable before any output is produced
            await self.chat.store.append_message(db, self.thread_id, ChatRole.USER.value, self.message)
            if self._cancelled:
                self._log_cancelled()
                return
            system_prompt = await self.chat.build_prompt(db, self.user, self.thread_id)
            if self._cancelled:
                self._log_cancelled()
                return

            deltas = self.chat.bridge.stream(system_prompt, self.message)
            self._pull_task = asyncio.create_task(self._pull(deltas))
            try:
                await self._pull_task
            except asyncio.CancelledError:
                if not self._cancelled:
                    raise
            finally:
                await deltas.aclose()
        except Exception:
            logger.exception("Error during chat streaming on thread %s", self.thread_id)
            await db.rollback()
            await self._persist_reply(db)
            if not self._closed:
                self.state = TurnState.ERROR
            self._push(error_event())
            return

        await self._persist_reply(db)
        if self._cancelled:
            self._log_cancelled()
            return
        self.state = TurnState.DONE
        self._push(done_event(self.thread_id))

    def _log_cancelled(self) -> None:
        logger.info("Turn on thread %s cancelled by client after %d chars", self.thread_id, len(self.text))

    async def _persist_reply(self, db: AsyncSession) -> None:
        """Append the accumulated assistant text as streamed, unless it is blank."""
        content = self.text
        if not content.strip():
            return
        try:
            await self.chat.store.append_message(db, self.thread_id, ChatRole.ASSISTANT.value, content)
        except Exception:
            logger.exception("Failed to persist assistant reply on thread %s", self.thread_id)
