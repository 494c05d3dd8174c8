"""Bounded retries with escalating per-attempt timeouts for ESI requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

import httpx

from utils.exceptions import (
    RETRYABLE_STATUS_CODES,
    HTTPError,
    MaxRetriesExceededError,
    NonRetryableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUTS: tuple[float, ...] = (1.5, 5.0, 10.0)
DEFAULT_BASE_DELAY = 0.5


def find_keyword(body: str | None, keywords: Iterable[str]) -> str | None:
    """Return the first keyword contained in ``body``, if any."""
    if not body:
        return None
    for keyword in keywords:
        if keyword and keyword in body:
            return keyword
    return None


class RequestRetrier:
    """Runs one asynchronous operation with bounded, escalating attempts.

    Each attempt races the operation against its own timeout budget taken
    from ``timeouts`` (later attempts get longer budgets); the loser of the
    race is cancelled. Between attempts the retrier sleeps
    ``base_delay * 2**attempt``.

    Only transient conditions are retried: HTTP 408/500/502/503/504, attempt
    timeouts and transport failures. Any other error propagates at once. An
    HTTP error whose body contains one of the caller's non-retryable keywords
    aborts immediately regardless of its status code.
    """

    def __init__(
        self,
        timeouts: Sequence[float] = DEFAULT_TIMEOUTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        retryable_status_codes: frozenset[int] = RETRYABLE_STATUS_CODES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not timeouts:
            raise ValueError("timeouts must contain at least one attempt")
        self.timeouts = tuple(timeouts)
        self.base_delay = base_delay
        self.retryable_status_codes = retryable_status_codes
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return len(self.timeouts)

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` failed."""
        return self.base_delay * (2**attempt)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        no_retry_keywords: Iterable[str] = (),
        description: str = "request",
        before_attempt: Callable[[], Awaitable[None]] | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            no_retry_keywords: Body substrings that abort without retrying
            description: Label used in log messages
            before_attempt: Awaited ahead of every attempt, outside its timeout

        Returns:
            The operation's result

        Raises:
            NonRetryableError: A response body contained a non-retryable keyword
            MaxRetriesExceededError: Every attempt failed with a transient error
            Exception: Any non-transient error raised by the operation
        """
        keywords = tuple(no_retry_keywords)
        last_error: BaseException | None = None

        for attempt, timeout in enumerate(self.timeouts):
            if before_attempt is not None:
                await before_attempt()
            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except HTTPError as e:
                keyword = find_keyword(e.body, keywords)
                if keyword is not None:
                    logger.debug(
                        "%s aborted: response contains non-retryable keyword %r",
                        description,
                        keyword,
                    )
                    raise NonRetryableError(keyword, e) from e
                if e.status not in self.retryable_status_codes:
                    raise
                last_error = e
            except TimeoutError as e:
                last_error = e
                logger.debug(
                    "%s timed out after %.1fs (attempt %d)",
                    description,
                    timeout,
                    attempt + 1,
                )
            except httpx.TransportError as e:
                last_error = e

            if attempt < self.max_attempts - 1:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %r; retrying in %.2fs",
                    description,
                    attempt + 1,
                    self.max_attempts,
                    last_error,
                    delay,
                )
                await self._sleep(delay)

        logger.error(
            "%s failed after %d attempts: %s", description, self.max_attempts, last_error
        )
        raise MaxRetriesExceededError(last_error, self.max_attempts) from last_error
