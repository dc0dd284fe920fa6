"""Per-thread turn serialization."""

from uuid import UUID

from edubot.errors import TurnInProgressError


class TurnLocks:
    """
    At most one in-flight turn per thread.

    A second send while a turn is streaming is rejected rather than queued.
    Check-and-set happens without an await, so it is atomic on the event loop.
    """

    def __init__(self):
        self._active: set[UUID] = set()

    def acquire(self, thread_id: UUID) -> None:
        if thread_id in self._active:
            raise TurnInProgressError()
        self._active.add(thread_id)

    def release(self, thread_id: UUID) -> None:
        self._active.discard(thread_id)

    def is_active(self, thread_id: UUID) -> bool:
        return thread_id in self._active
