# marketlens/scrapers/retry.py

"""Retry-with-exponential-backoff for a single scrape attempt."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Every attempt failed; ``last_error`` holds the final cause."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        reason = str(last_error) or type(last_error).__name__
        super().__init__(f"{attempts} attempts failed: {reason}")


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay after failed attempt *attempt* (0-indexed): base * 2^k."""
    return base_delay * (2 ** attempt)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay: float,
    logger: logging.Logger,
    label: str,
) -> T:
    """Run *operation* up to *max_retries* times.

    Sleeps ``base_delay * 2**k`` after failed attempt *k*, except after
    the last one.  Cancellation is never retried.
    """
    attempts = max(1, max_retries)
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            last_error = exc
            logger.warning(
                "[%s] Attempt %d/%d failed: %s",
                label,
                attempt + 1,
                attempts,
                str(exc) or type(exc).__name__,
                exc_info=True,
            )
            if attempt < attempts - 1:
                await asyncio.sleep(backoff_delay(base_delay, attempt))

    if last_error is None:
        last_error = RuntimeError("no attempt was made")
    raise RetryExhaustedError(attempts, last_error) from last_error
