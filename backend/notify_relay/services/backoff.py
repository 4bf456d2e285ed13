"""Retry helper with exponential backoff."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await operation() until it succeeds, up to max_attempts times.

    After a failed attempt i (zero-based) that is not the last one, waits
    base_delay * 2**i seconds (1s, 2s, 4s... with the default base_delay).
    The failure of the final attempt is re-raised unchanged. The reason for a
    failure is not inspected: any exception counts.

    Args:
        operation:    Zero-argument coroutine function to call.
        max_attempts: Total number of calls allowed (must be >= 1).
        base_delay:   First delay in seconds.
        sleep:        Awaitable used for the pause; injectable for tests.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as exc:
            if attempt == max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt + 1,
                max_attempts,
                exc,
                delay,
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises on the last attempt
    raise RuntimeError("retry_with_backoff exited without a result")
