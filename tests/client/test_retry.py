"""Tests for retry logic and network waiting."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from friendsync.client.delivery.errors import is_retryable
from friendsync.client.delivery.network import ConnectivityFlagMonitor, NetworkStatus
from friendsync.client.delivery.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    compute_backoff_delay,
    wait_for_network,
    with_retry,
)
from friendsync.client.delivery.types import RetryAttempt


class FlakyOperation:
    """Fails a given number of times, then returns a value."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or httpx.ConnectError("down")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestComputeBackoffDelay:
    """Tests for compute_backoff_delay()."""

    def test_doubles_each_attempt(self) -> None:
        delays = [compute_backoff_delay(i, 1.0, 100.0) for i in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self) -> None:
        assert compute_backoff_delay(10, 1.0, 10.0) == 10.0

    def test_jitter_added_before_cap(self) -> None:
        assert compute_backoff_delay(1, 1.0, 10.0, jitter=0.5) == 2.5
        assert compute_backoff_delay(3, 1.0, 8.5, jitter=0.9) == 8.5

    def test_defaults(self) -> None:
        assert DEFAULT_MAX_RETRIES == 3
        assert DEFAULT_BASE_DELAY == 1.0
        assert DEFAULT_MAX_DELAY == 10.0


class TestWithRetry:
    """Tests for with_retry()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, sleeps: Any) -> None:
        operation = FlakyOperation(failures=0)

        result = await with_retry(operation, sleep=sleeps)

        assert result == "ok"
        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, sleeps: Any) -> None:
        """Two failures then success: three calls, two waits."""
        operation = FlakyOperation(failures=2)

        result = await with_retry(operation, sleep=sleeps, random_fn=lambda: 0.0)

        assert result == "ok"
        assert operation.calls == 3
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, sleeps: Any) -> None:
        """max_retries + 1 attempts, then the last error propagates."""
        operation = FlakyOperation(failures=10)

        with pytest.raises(httpx.ConnectError):
            await with_retry(operation, max_retries=3, sleep=sleeps, random_fn=lambda: 0.0)

        assert operation.calls == 4
        assert sleeps.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self, sleeps: Any) -> None:
        operation = FlakyOperation(failures=1)

        with pytest.raises(httpx.ConnectError):
            await with_retry(operation, max_retries=0, sleep=sleeps)

        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_jitter_scaled_by_random(self, sleeps: Any) -> None:
        """Each delay gets random_fn() * jitter added."""
        operation = FlakyOperation(failures=2)

        await with_retry(
            operation, base_delay=1.0, jitter=2.0, sleep=sleeps, random_fn=lambda: 0.25
        )

        assert sleeps.delays == [1.5, 2.5]

    @pytest.mark.asyncio
    async def test_delays_never_exceed_max(self, sleeps: Any) -> None:
        operation = FlakyOperation(failures=5)

        await with_retry(
            operation,
            max_retries=5,
            base_delay=1.0,
            max_delay=3.0,
            jitter=1.0,
            sleep=sleeps,
            random_fn=lambda: 0.99,
        )

        assert all(delay <= 3.0 for delay in sleeps.delays)

    @pytest.mark.asyncio
    async def test_retries_everything_by_default(self, sleeps: Any) -> None:
        """Without should_retry, even a non-retryable error is retried."""
        operation = FlakyOperation(failures=1, error=ValueError("bad input"))

        result = await with_retry(operation, sleep=sleeps)

        assert result == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_should_retry_short_circuits(self, sleeps: Any) -> None:
        operation = FlakyOperation(failures=1, error=ValueError("bad input"))

        with pytest.raises(ValueError):
            await with_retry(operation, sleep=sleeps, should_retry=is_retryable)

        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_wait(self, sleeps: Any) -> None:
        seen: list[tuple[RetryAttempt, BaseException]] = []
        operation = FlakyOperation(failures=2)

        await with_retry(
            operation,
            sleep=sleeps,
            random_fn=lambda: 0.0,
            on_retry=lambda attempt, error: seen.append((attempt, error)),
        )

        assert [a.attempt_index for a, _ in seen] == [0, 1]
        assert [a.delay for a, _ in seen] == [1.0, 2.0]
        assert all(isinstance(e, httpx.ConnectError) for _, e in seen)


class ScriptedMonitor(ConnectivityFlagMonitor):
    """Monitor answering get_status() from a script."""

    def __init__(self, script: list[bool]) -> None:
        super().__init__(connected=script[0])
        self.script = list(script)
        self.checks = 0

    async def get_status(self) -> NetworkStatus:
        self.checks += 1
        value = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        return NetworkStatus(connected=value)


class TestWaitForNetwork:
    """Tests for wait_for_network()."""

    @pytest.mark.asyncio
    async def test_returns_immediately_when_connected(self, sleeps: Any) -> None:
        waiting: list[bool] = []
        monitor = ScriptedMonitor([True])

        await wait_for_network(monitor, sleep=sleeps, on_waiting=lambda: waiting.append(True))

        assert sleeps.delays == []
        assert waiting == []

    @pytest.mark.asyncio
    async def test_polls_until_connected(self, sleeps: Any) -> None:
        events: list[str] = []
        monitor = ScriptedMonitor([False, False, False, True])

        await wait_for_network(
            monitor,
            check_interval=5.0,
            sleep=sleeps,
            on_waiting=lambda: events.append("waiting"),
            on_restored=lambda: events.append("restored"),
        )

        assert sleeps.delays == [5.0, 5.0, 5.0]
        assert events == ["waiting", "restored"]
        assert monitor.checks == 4
