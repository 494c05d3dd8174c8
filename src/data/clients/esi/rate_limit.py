"""Process-wide token bucket throttling every outbound ESI request.

The bucket holds up to ``max_tokens`` permits and refills continuously at
``refill_rate`` permits per second, proportional to the wall-clock time that
elapsed since the previous refill. Each request consumes one permit. Callers
that find the bucket empty poll on a short fixed interval until a permit is
available, so waiters are served in poll order rather than FIFO.
"""

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket shared by every request issued by the application.

    One instance is created by the composition root and handed to each
    NetworkFetcher, so all requests draw from the same bucket.
    """

    def __init__(
        self,
        max_tokens: int = 20,
        refill_rate: float = 10.0,
        poll_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the rate limiter with a full bucket.

        Args:
            max_tokens: Bucket capacity
            refill_rate: Tokens added per second
            poll_interval: Seconds between polls while the bucket is empty
            clock: Monotonic time source (seconds)
        """
        if max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {max_tokens}")
        if refill_rate <= 0:
            raise ValueError(f"refill_rate must be > 0, got {refill_rate}")

        self.max_tokens = max_tokens
        self.refill_rate = refill_rate
        self.poll_interval = poll_interval
        self._clock = clock
        self._tokens = float(max_tokens)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.max_tokens), self._tokens + elapsed * self.refill_rate
            )
        self._last_refill = now

    @property
    def available_tokens(self) -> float:
        """Tokens currently in the bucket (after refilling)."""
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Consume one token if available without waiting.

        Returns:
            True if a token was consumed
        """
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def wait_for_permission(self) -> None:
        """Suspend until a token is available, then consume it."""
        waited = False
        while True:
            async with self._lock:
                if self.try_acquire():
                    if waited:
                        logger.debug(
                            "Rate limiter granted permission after waiting (%.2f tokens left)",
                            self._tokens,
                        )
                    return
            if not waited:
                logger.debug(
                    "Rate limiter bucket empty, polling every %.2fs", self.poll_interval
                )
                waited = True
            await asyncio.sleep(self.poll_interval)

    def get_status(self) -> dict:
        """Get current bucket status.

        Returns:
            Dict with capacity, refill rate and available tokens
        """
        return {
            "max_tokens": self.max_tokens,
            "refill_rate": self.refill_rate,
            "available": round(self.available_tokens, 3),
        }
