"""Circuit breaker guarding the friends API.

The circuit breaker has three states:
- CLOSED: Normal operation, calls flow through and failures are counted
- OPEN: Calls are rejected with CircuitOpenError until the cooldown elapses
- HALF_OPEN: One probe call is let through to test recovery

State transitions:
- CLOSED -> OPEN: When consecutive_failures >= failure_threshold
- OPEN -> HALF_OPEN: On the first call after cooldown has elapsed
- HALF_OPEN -> CLOSED: Probe succeeded
- HALF_OPEN -> OPEN: Probe failed (cooldown restarts)

Half-open probes are not serialized: two calls arriving right after the
cooldown may both reach the wrapped function before either settles.

Usage:
    breaker = CircuitBreaker(failure_threshold=5, cooldown=60.0)
    result = await breaker.execute(lambda: client.unfriend(friend_id))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from friendsync.client.delivery.types import CircuitOpenError, CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CircuitBreakerStats:
    """Counters describing breaker behavior since creation."""

    total_successes: int = 0
    total_failures: int = 0
    total_rejections: int = 0
    times_opened: int = 0
    times_half_opened: int = 0
    times_closed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "times_opened": self.times_opened,
            "times_half_opened": self.times_half_opened,
            "times_closed": self.times_closed,
        }


class CircuitBreaker:
    """Fail-fast guard around a family of remote operations.

    State is only changed by execute() outcomes and reset().

    Attributes:
        failure_threshold: Consecutive failures before opening the circuit.
        cooldown: Seconds to stay OPEN before allowing a probe.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        name: str = "friends",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening. Default 5.
            cooldown: Seconds in OPEN before a probe. Default 60.
            name: Name used in log messages.
            clock: Monotonic time source, replaced by tests.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if cooldown <= 0:
            raise ValueError("cooldown must be positive")

        self._failure_threshold = failure_threshold
        self._cooldown = cooldown
        self._name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_at: float | None = None
        self._stats = CircuitBreakerStats()

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def cooldown(self) -> float:
        return self._cooldown

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        """Current state. Reading it never triggers a transition."""
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure_at

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def time_until_retry(self) -> float | None:
        """Seconds until a probe is allowed, or None if not OPEN."""
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return None
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self._cooldown - elapsed)

    def _set_state(self, new_state: CircuitState, reason: str) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._stats.times_opened += 1
        elif new_state == CircuitState.HALF_OPEN:
            self._stats.times_half_opened += 1
        elif new_state == CircuitState.CLOSED:
            self._stats.times_closed += 1

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker %r: %s -> %s (%s)",
            self._name,
            old_state.value,
            new_state.value,
            reason,
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn through the breaker.

        Args:
            fn: Zero-argument coroutine function.

        Returns:
            The result of fn.

        Raises:
            CircuitOpenError: If the circuit is OPEN and the cooldown has not
                elapsed (fn is not called).
            Exception: Whatever fn raised.
        """
        if self._state == CircuitState.OPEN:
            remaining = self.time_until_retry()
            if remaining is not None and remaining > 0:
                self._stats.total_rejections += 1
                raise CircuitOpenError(remaining, self._name)
            self._set_state(CircuitState.HALF_OPEN, "cooldown elapsed")

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self._stats.total_successes += 1
        self._consecutive_failures = 0
        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.CLOSED, "probe succeeded")
        else:
            logger.debug("Circuit breaker %r: success recorded", self._name)

    def _on_failure(self) -> None:
        self._stats.total_failures += 1
        self._consecutive_failures += 1
        self._last_failure_at = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN, "probe failed")
        elif self._consecutive_failures >= self._failure_threshold:
            self._set_state(
                CircuitState.OPEN,
                f"{self._consecutive_failures}/{self._failure_threshold} failures",
            )
        else:
            logger.warning(
                "Circuit breaker %r: failure %d/%d",
                self._name,
                self._consecutive_failures,
                self._failure_threshold,
            )

    def reset(self) -> None:
        """Force the breaker back to CLOSED with zero failures."""
        self._consecutive_failures = 0
        self._last_failure_at = None
        self._set_state(CircuitState.CLOSED, "reset")
        logger.info("Circuit breaker %r reset", self._name)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for status output."""
        return {
            "name": self._name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self._failure_threshold,
            "cooldown": self._cooldown,
            "time_until_retry": self.time_until_retry(),
            **self._stats.to_dict(),
        }
