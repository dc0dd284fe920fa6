"""
In-process notification broker.

Fan-out is at-most-once: an event reaches the subscribers registered at the
moment it is published and nothing is replayed to later connections. A
subscriber whose delivery fails is dropped by the same publish call.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from sse_starlette.sse import ServerSentEvent

logger = logging.getLogger(__name__)

FRAME_SEPARATOR = "\n"
CONNECTED_FRAME = ServerSentEvent(comment="connected", sep=FRAME_SEPARATOR).encode()


class SubscriberClosed(Exception):
    """Raised when sending to a subscriber that has already been closed."""


class Subscriber(Protocol):
    """Anything the broker can deliver encoded frames to."""

    async def send(self, frame: bytes) -> None: ...

    def close(self) -> None: ...


class QueueSubscriber:
    """
    Subscriber backed by a bounded queue, drained by one SSE response.

    Iterating yields frames until the subscriber is closed. A full queue
    means the client is not keeping up; ``send`` then fails and the broker
    drops it.
    """

    def __init__(self, broker: "NotificationBroker", maxsize: int):
        self._broker = broker
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._watcher: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, frame: bytes) -> None:
        if self._closed:
            raise SubscriberClosed()
        self._queue.put_nowait(frame)

    async def send(self, frame: bytes) -> None:
        self.offer(frame)

    def close(self) -> None:
        """Unregister and end iteration. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._broker.unregister(self)

        # Wake a pending reader; pending frames are dropped only if the queue is full
        if self._queue.full():
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(None)

        watcher = self._watcher
        if watcher is not None and not watcher.done() and watcher is not asyncio.current_task():
            watcher.cancel()

    def close_when(self, stop: asyncio.Event) -> None:
        """Close automatically once ``stop`` is set."""

        async def _watch() -> None:
            await stop.wait()
            self.close()

        self._watcher = asyncio.create_task(_watch())

    def __aiter__(self) -> "QueueSubscriber":
        return self

    async def __anext__(self) -> bytes:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        frame = await self._queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class NotificationBroker:
    """Registry of live subscribers plus the publish fan-out."""

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._subscribers: set[Subscriber] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def register(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)
        logger.debug("Subscriber registered (%d live)", len(self._subscribers))

    def unregister(self, subscriber: Subscriber) -> None:
        self._subscribers.discard(subscriber)
        logger.debug("Subscriber unregistered (%d live)", len(self._subscribers))

    def subscribe(self, stop: asyncio.Event | None = None) -> QueueSubscriber:
        """
        Register a queue-backed subscriber for one connection.

        The ``: connected`` comment frame is queued immediately so the client
        sees the stream open before any event is published.
        """
        subscriber = QueueSubscriber(self, self._queue_size)
        self.register(subscriber)
        subscriber.offer(CONNECTED_FRAME)
        if stop is not None:
            subscriber.close_when(stop)
        return subscriber

    async def publish(self, event: dict[str, Any]) -> int:
        """
        Deliver an event to every currently registered subscriber.

        Returns:
            Number of subscribers the event was delivered to.
        """
        frame = ServerSentEvent(data=json.dumps(event), sep=FRAME_SEPARATOR).encode()

        # Snapshot: subscribers may (un)register while sends are suspended
        subscribers = list(self._subscribers)
        results = await asyncio.gather(
            *(subscriber.send(frame) for subscriber in subscribers),
            return_exceptions=True,
        )

        delivered = 0
        for subscriber, result in zip(subscribers, results):
            if isinstance(result, BaseException):
                logger.debug("Dropping subscriber after failed delivery: %r", result)
                self._drop(subscriber)
            else:
                delivered += 1
        return delivered

    async def publish_grade_created(self, student_number: str) -> int:
        return await self.publish({"type": "grade_created", "student_number": student_number})

    def _drop(self, subscriber: Subscriber) -> None:
        self.unregister(subscriber)
        try:
            subscriber.close()
        except Exception:
            logger.warning("Error closing dropped subscriber", exc_info=True)
