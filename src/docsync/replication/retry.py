"""Retry and backoff policy.

This module provides:
- compute_backoff: the delay before a failed record becomes eligible again
- retry_with_backoff: in-process retry for one-off calls (connection tests)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 5.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 300.0  # seconds


def compute_backoff(
    attempt: int,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
) -> float:
    """Delay after the given failed attempt (1-based).

    The delay grows with the attempt number, ``retry_delay * attempt``,
    and is capped at ``max_delay``.
    """
    if attempt < 1 or retry_delay <= 0:
        return 0.0
    return min(retry_delay * attempt, max_delay)


def retry_with_backoff(
    func: Callable[[], Any],
    max_attempts: int = 3,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute a function, retrying with growing delays.

    Args:
        func: Function to execute.
        max_attempts: Total attempts, including the first one.
        retry_delay: Base delay in seconds.
        max_delay: Upper bound for a single delay.
        retryable_exceptions: Exception types that trigger a retry.
        sleep: Sleep function (replaced in tests).

    Returns:
        Result of the function.

    Raises:
        The last exception if every attempt fails.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                logger.error("All %d attempts failed: %s", max_attempts, e)
                raise
            delay = compute_backoff(attempt, retry_delay, max_delay)
            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...", attempt, max_attempts, e, delay
            )
            sleep(delay)
    raise RuntimeError("Unexpected retry loop exit")
