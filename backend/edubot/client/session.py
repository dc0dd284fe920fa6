"""A chat conversation as seen by one client."""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from edubot.client.reveal import DEFAULT_TICK_INTERVAL, TranscriptMessage, TypewriterTranscript
from edubot.client.stream_consumer import ChatStreamConsumer, StreamHandlers, StreamResult


class ChatSession:
    """
    Glues the stream consumer to a typewriter transcript.

    Tracks the current thread id; the first reply on a new conversation
    carries the id the server assigned, which is reported once through
    ``on_thread_created``.
    """

    def __init__(
        self,
        consumer: ChatStreamConsumer,
        transcript: TypewriterTranscript | None = None,
        thread_id: str | None = None,
        on_thread_created: Callable[[str], Any] | None = None,
        reveal_interval: float = DEFAULT_TICK_INTERVAL,
    ):
        self.consumer = consumer
        self.transcript = transcript or TypewriterTranscript()
        self.thread_id = thread_id
        self.on_thread_created = on_thread_created
        self.reveal_interval = reveal_interval

    @property
    def messages(self) -> list[TranscriptMessage]:
        return self.transcript.messages

    async def send(self, message: str) -> StreamResult:
        """
        Send one message and wait until its reply is committed to the transcript.

        Raises ``ChatStreamError`` when the stream cannot be opened or breaks;
        the error has already been committed as an assistant message by then.
        """
        self.transcript.add_user_message(message)
        self.transcript.start_turn()
        reveal = asyncio.create_task(self.transcript.run_reveal(self.reveal_interval))

        handlers = StreamHandlers(
            on_chunk=self.transcript.append,
            on_finish=self._finished,
            on_error=self._failed,
        )
        try:
            result = await self.consumer.send(message, self.thread_id, handlers)
        except BaseException:
            reveal.cancel()
            raise
        await reveal
        return result

    async def _finished(self, text: str, thread_id: str | None) -> None:
        self.transcript.finish(text)
        if thread_id and thread_id != self.thread_id:
            created = self.thread_id is None
            self.thread_id = thread_id
            if created and self.on_thread_created is not None:
                result = self.on_thread_created(thread_id)
                if inspect.isawaitable(result):
                    await result

    def _failed(self, exc: Exception) -> None:
        self.transcript.fail(str(exc))
