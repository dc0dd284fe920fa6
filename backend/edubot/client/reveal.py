"""
Typewriter-style reveal of a streamed reply.

Network chunks land in an append-only buffer; a separate timer moves a
display cursor through it at a steady rate. A turn is committed to the
transcript only once the network side has finished and the cursor has
caught up, so bursty delivery still reads smoothly.
"""

import asyncio
from dataclasses import dataclass

EMPTY_RESPONSE = "I received an empty response. Please try again."
ERROR_TEMPLATE = "Sorry, I encountered an error: {}"

DEFAULT_CHARS_PER_TICK = 10
DEFAULT_TICK_INTERVAL = 0.005


@dataclass(frozen=True)
class TranscriptMessage:
    role: str
    content: str


class TypewriterTranscript:
    """Committed messages plus the in-flight assistant reply."""

    def __init__(self, chars_per_tick: int = DEFAULT_CHARS_PER_TICK):
        if chars_per_tick < 1:
            raise ValueError("chars_per_tick must be positive")
        self.chars_per_tick = chars_per_tick
        self.messages: list[TranscriptMessage] = []
        self._reset()

    def _reset(self) -> None:
        self._buffer = ""
        self._final_text: str | None = None
        self._network_done = False
        self._active = False
        self.cursor = 0

    @property
    def active(self) -> bool:
        """True between ``start_turn`` and the commit of its reply."""
        return self._active

    @property
    def target(self) -> str:
        return self._final_text if self._final_text is not None else self._buffer

    @property
    def displayed(self) -> str:
        return self.target[: self.cursor]

    @property
    def caught_up(self) -> bool:
        return self.cursor >= len(self.target)

    def add_user_message(self, content: str) -> None:
        self.messages.append(TranscriptMessage("user", content))

    def start_turn(self) -> None:
        self._reset()
        self._active = True

    def append(self, chunk: str) -> None:
        if self._active and not self._network_done:
            self._buffer += chunk

    def finish(self, final_text: str | None = None) -> None:
        """Network side is done. A non-empty ``final_text`` replaces the accumulation."""
        if not self._active:
            return
        if final_text:
            self._final_text = final_text
        self._network_done = True
        self._maybe_commit()

    def fail(self, message: str) -> None:
        """Abandon the accumulation and show the error as the assistant's reply."""
        if not self._active:
            return
        self.messages.append(TranscriptMessage("assistant", ERROR_TEMPLATE.format(message)))
        self._reset()

    def tick(self) -> None:
        if not self._active:
            return
        self.cursor = min(len(self.target), self.cursor + self.chars_per_tick)
        self._maybe_commit()

    async def run_reveal(self, interval: float = DEFAULT_TICK_INTERVAL) -> None:
        """Tick every ``interval`` seconds until the current turn is committed or abandoned."""
        while self._active:
            self.tick()
            if not self._active:
                break
            await asyncio.sleep(interval)

    def _maybe_commit(self) -> None:
        if not (self._network_done and self.caught_up):
            return
        content = self.target if self.target.strip() else EMPTY_RESPONSE
        self.messages.append(TranscriptMessage("assistant", content))
        self._reset()
