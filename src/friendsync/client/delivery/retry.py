"""Retry logic with exponential backoff and network-aware waiting.

This module provides:
- compute_backoff_delay: Delay before a given retry attempt
- with_retry: Run an async operation with bounded exponential backoff
- wait_for_network: Wait for a network monitor to report connectivity
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from friendsync.client.delivery.types import RetryAttempt

if TYPE_CHECKING:
    from friendsync.client.delivery.network import NetworkMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
DEFAULT_JITTER = 1.0  # seconds

# Network-aware waiting
NETWORK_CHECK_INTERVAL = 5.0  # seconds between network checks

SleepFunc = Callable[[float], Awaitable[Any]]


def compute_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = 0.0,
) -> float:
    """Compute the delay before retrying after a failed attempt.

    delay = min(base_delay * 2**attempt + jitter, max_delay)

    Args:
        attempt: Zero-based index of the attempt that just failed.
        base_delay: Delay for attempt 0, in seconds.
        max_delay: Upper bound in seconds.
        jitter: Random offset already drawn for this attempt, in seconds.

    Returns:
        Delay in seconds.
    """
    return min(base_delay * (2**attempt) + jitter, max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    sleep: SleepFunc = asyncio.sleep,
    random_fn: Callable[[], float] = random.random,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[RetryAttempt, BaseException], None] | None = None,
) -> T:
    """Execute an async operation with exponential backoff retry.

    Attempts run strictly one after another. The jitter term is drawn
    independently for every attempt.

    Args:
        operation: Zero-argument coroutine function to run.
        max_retries: Retries after the first attempt.
        base_delay: Initial backoff time in seconds.
        max_delay: Maximum backoff time in seconds.
        jitter: Upper bound of the random offset added to each delay.
        sleep: Awaitable sleep, replaced by tests.
        random_fn: Source of uniform [0, 1) numbers, replaced by tests.
        should_retry: Optional predicate; when it returns False the error
            is raised at once. Without it every error is retried.
        on_retry: Optional callback invoked before each wait.

    Returns:
        Result of the operation.

    Raises:
        The last exception if all attempts fail.
    """
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_retries:
                logger.error(f"All {max_retries + 1} attempts failed: {e}")
                raise
            if should_retry is not None and not should_retry(e):
                logger.info(f"Not retrying non-retryable error: {e}")
                raise

            delay = compute_backoff_delay(
                attempt, base_delay, max_delay, jitter=random_fn() * jitter
            )
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            if on_retry:
                on_retry(RetryAttempt(attempt_index=attempt, delay=delay), e)
            await sleep(delay)

    # Unreachable: the last attempt either returns or raises
    raise RuntimeError("Unexpected retry loop exit")


async def wait_for_network(
    monitor: NetworkMonitor,
    check_interval: float = NETWORK_CHECK_INTERVAL,
    on_waiting: Callable[[], None] | None = None,
    on_restored: Callable[[], None] | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> None:
    """Wait indefinitely for the network monitor to report connectivity.

    Args:
        monitor: Network monitor to poll.
        check_interval: Seconds between checks (default: 5s).
        on_waiting: Optional callback when starting to wait.
        on_restored: Optional callback when network is restored.
    """
    if (await monitor.get_status()).connected:
        return

    logger.info(
        f"Network appears down. Waiting for connectivity "
        f"(checking every {check_interval}s)..."
    )
    if on_waiting:
        on_waiting()

    attempts = 0
    while True:
        await sleep(check_interval)
        attempts += 1

        if (await monitor.get_status()).connected:
            logger.info(f"Network restored after {attempts * check_interval:.0f}s")
            if on_restored:
                on_restored()
            return

        if attempts % 12 == 0:  # Log every minute (12 * 5s)
            logger.info(
                f"Still waiting for network... ({attempts * check_interval:.0f}s elapsed)"
            )
