"""Completion bridge over the Anthropic Messages API (one-shot and streamed)."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from anthropic import APIConnectionError, APIError, APIStatusError, AsyncAnthropic, RateLimitError

from edubot.config import get_settings
from edubot.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

# Transient error types that warrant retrying
_RETRYABLE_ERRORS = (APIConnectionError, RateLimitError)
_OVERLOADED_STATUS = 529


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, _RETRYABLE_ERRORS):
        return True
    return isinstance(error, APIStatusError) and error.status_code == _OVERLOADED_STATUS


def _backoff_delay(attempt: int) -> float:
    return settings.llm_retry_base_delay * (2 ** attempt)


async def _retry_anthropic(coro_factory: Callable[[], Awaitable[T]]) -> T:
    """
    Retry an Anthropic API call with exponential backoff.

    Args:
        coro_factory: Callable that returns a new coroutine each invocation.

    Returns:
        The result of the coroutine. The last error is re-raised once
        attempts are exhausted; non-transient errors are raised immediately.
    """
    max_attempts = settings.llm_max_attempts
    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except APIError as e:
            if not _is_retryable(e) or attempt >= max_attempts - 1:
                raise
            delay = _backoff_delay(attempt)
            logger.warning(
                "Anthropic API transient error (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1, max_attempts, delay, str(e),
            )
            await asyncio.sleep(delay)
    raise RuntimeError("llm_max_attempts must be at least 1")


def _response_text(message) -> str:
    """Concatenate the text blocks of a Messages API response."""
    parts = [
        block.text
        for block in getattr(message, "content", None) or []
        if getattr(block, "type", None) == "text"
    ]
    return "".join(parts).strip()


class CompletionBridge:
    """Adapts the provider's completion APIs to what the chat pipeline needs."""

    def __init__(self, client: AsyncAnthropic | None = None):
        self.client = client or AsyncAnthropic(api_key=settings.anthropic_api_key)

    async def complete(
        self,
        system_prompt: str,
        message: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """
        One-shot completion.

        Raises:
            UpstreamUnavailable: provider failed or returned no text.
        """
        try:
            response = await _retry_anthropic(
                lambda: self.client.messages.create(
                    model=settings.llm_model,
                    max_tokens=max_tokens or settings.llm_max_tokens,
                    temperature=settings.llm_temperature if temperature is None else temperature,
                    system=system_prompt,
                    messages=[{"role": "user", "content": message}],
                )
            )
        except APIError as e:
            logger.exception("LLM completion failed")
            raise UpstreamUnavailable() from e

        content = _response_text(response)
        if not content:
            logger.warning("LLM completion returned no text content")
            raise UpstreamUnavailable()
        return content

    async def stream(self, system_prompt: str, message: str) -> AsyncIterator[str]:
        """
        Stream text deltas for one completion.

        Transient errors are retried only while nothing has been yielded yet;
        after the first delta a failure ends the stream. Closing this generator
        exits the SDK stream context, which closes the provider connection.

        Raises:
            UpstreamUnavailable: provider failed.
        """
        max_attempts = settings.llm_max_attempts
        for attempt in range(max_attempts):
            emitted = False
            try:
                async with self.client.messages.stream(
                    model=settings.llm_model,
                    max_tokens=settings.llm_max_tokens,
                    temperature=settings.llm_temperature,
                    system=system_prompt,
                    messages=[{"role": "user", "content": message}],
                ) as stream:
                    async for text in stream.text_stream:
                        if text:
                            emitted = True
                            yield text
                return
            except APIError as e:
                if emitted or not _is_retryable(e) or attempt >= max_attempts - 1:
                    logger.exception("LLM streaming failed (attempt %d/%d)", attempt + 1, max_attempts)
                    raise UpstreamUnavailable() from e
                delay = _backoff_delay(attempt)
                logger.warning(
                    "Anthropic stream transient error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1, max_attempts, delay, str(e),
                )
                await asyncio.sleep(delay)


# Singleton instance
completion_bridge = CompletionBridge()
