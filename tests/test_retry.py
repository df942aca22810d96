# tests/test_retry.py

"""Tests for retry-with-exponential-backoff."""

import logging
import unittest
from unittest.mock import AsyncMock, patch

from marketlens.scrapers.retry import (
    RetryExhaustedError,
    backoff_delay,
    retry_with_backoff,
)

_LOGGER = logging.getLogger("marketlens.test")
SLEEP_PATH = "marketlens.scrapers.retry.asyncio.sleep"


class TestBackoffDelay(unittest.TestCase):
    """Delay after attempt k is base * 2^k."""

    def test_half_second_base(self) -> None:
        self.assertEqual(
            [backoff_delay(0.5, k) for k in range(3)], [0.5, 1.0, 2.0],
        )

    def test_one_second_base(self) -> None:
        self.assertEqual(
            [backoff_delay(1.0, k) for k in range(3)], [1.0, 2.0, 4.0],
        )


class TestRetryWithBackoff(unittest.IsolatedAsyncioTestCase):
    """Attempt counting and sleeping between failures."""

    async def test_first_success_does_not_sleep(self) -> None:
        operation = AsyncMock(return_value=["ok"])
        with patch(SLEEP_PATH, new_callable=AsyncMock) as sleep:
            result = await retry_with_backoff(
                operation,
                max_retries=3,
                base_delay=0.5,
                logger=_LOGGER,
                label="test",
            )
        self.assertEqual(result, ["ok"])
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    async def test_recovers_after_failures(self) -> None:
        operation = AsyncMock(
            side_effect=[TimeoutError("slow"), TimeoutError("slow"), ["ok"]]
        )
        with patch(SLEEP_PATH, new_callable=AsyncMock) as sleep:
            result = await retry_with_backoff(
                operation,
                max_retries=3,
                base_delay=0.5,
                logger=_LOGGER,
                label="test",
            )
        self.assertEqual(result, ["ok"])
        self.assertEqual(
            [c.args[0] for c in sleep.await_args_list], [0.5, 1.0],
        )

    async def test_exhaustion_raises_with_last_error(self) -> None:
        operation = AsyncMock(side_effect=ConnectionError("refused"))
        with patch(SLEEP_PATH, new_callable=AsyncMock) as sleep:
            with self.assertRaises(RetryExhaustedError) as ctx:
                await retry_with_backoff(
                    operation,
                    max_retries=3,
                    base_delay=1.0,
                    logger=_LOGGER,
                    label="test",
                )
        self.assertEqual(operation.await_count, 3)
        # No sleep after the final attempt
        self.assertEqual(
            [c.args[0] for c in sleep.await_args_list], [1.0, 2.0],
        )
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsInstance(ctx.exception.last_error, ConnectionError)
        self.assertIn("3 attempts failed: refused", str(ctx.exception))

    async def test_zero_retries_still_attempts_once(self) -> None:
        operation = AsyncMock(return_value=[])
        result = await retry_with_backoff(
            operation,
            max_retries=0,
            base_delay=0.0,
            logger=_LOGGER,
            label="test",
        )
        self.assertEqual(result, [])
        operation.assert_awaited_once()
