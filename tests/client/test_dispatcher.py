"""Tests for mutation dispatch."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from friendsync.client.delivery.circuit_breaker import CircuitBreaker
from friendsync.client.delivery.dispatcher import OPERATIONS, Dispatcher, build_call_args
from friendsync.client.delivery.types import CircuitOpenError, CircuitState, UnknownOperationError
from friendsync.core.config import RetryConfig
from friendsync.core.types import OperationKind


def make_dispatcher(
    executor: Any,
    sleeps: Any,
    breaker: CircuitBreaker | None = None,
    **retry: Any,
) -> Dispatcher:
    retry.setdefault("jitter", 0.0)
    return Dispatcher(
        executor,
        breaker or CircuitBreaker(failure_threshold=2, cooldown=60.0),
        RetryConfig(**retry),
        sleep=sleeps,
    )


class TestBuildCallArgs:
    """Tests for build_call_args()."""

    def test_every_kind_mapped(self) -> None:
        assert set(OPERATIONS) == set(OperationKind)

    def test_required_keys(self) -> None:
        assert build_call_args(OperationKind.UNFRIEND, {"friend_id": "f1"}) == (
            "unfriend",
            {"friend_id": "f1"},
        )

    def test_optional_keys_included_when_set(self) -> None:
        method, kwargs = build_call_args(
            OperationKind.BLOCK, {"user_id": "u1", "reason": "spam", "extra": 1}
        )
        assert method == "block_user"
        assert kwargs == {"user_id": "u1", "reason": "spam"}

    def test_optional_none_dropped(self) -> None:
        _, kwargs = build_call_args(
            OperationKind.SEND_REQUEST, {"receiver_id": "u2", "message": None}
        )
        assert kwargs == {"receiver_id": "u2"}

    def test_missing_required_key(self) -> None:
        with pytest.raises(UnknownOperationError, match="request_id"):
            build_call_args(OperationKind.ACCEPT, {})

    def test_unknown_kind(self) -> None:
        with pytest.raises(UnknownOperationError, match="Unknown operation type"):
            build_call_args("poke", {})  # type: ignore[arg-type]


class TestDispatcher:
    """Tests for Dispatcher.dispatch()."""

    @pytest.mark.asyncio
    async def test_routes_to_executor(self, executor: Any, sleeps: Any) -> None:
        dispatcher = make_dispatcher(executor, sleeps)

        result = await dispatcher.dispatch(OperationKind.ACCEPT, {"request_id": "r1"})

        assert executor.calls == [("accept_friend_request", {"request_id": "r1"})]
        assert result == {"method": "accept_friend_request", "request_id": "r1"}

    @pytest.mark.asyncio
    async def test_callable(self, executor: Any, sleeps: Any) -> None:
        dispatcher = make_dispatcher(executor, sleeps)
        await dispatcher(OperationKind.UNBLOCK, {"user_id": "u1"})
        assert executor.methods() == ["unblock_user"]

    @pytest.mark.asyncio
    async def test_retries_inside_breaker(self, executor: Any, sleeps: Any) -> None:
        """Transient failures are retried; the breaker sees one success."""
        executor.failures["unfriend"] = [httpx.ConnectError("down"), httpx.ConnectError("down")]
        breaker = CircuitBreaker(failure_threshold=2, cooldown=60.0)
        dispatcher = make_dispatcher(executor, sleeps, breaker=breaker)

        await dispatcher.dispatch(OperationKind.UNFRIEND, {"friend_id": "f1"})

        assert executor.methods() == ["unfriend"] * 3
        assert sleeps.delays == [1.0, 2.0]
        assert breaker.consecutive_failures == 0
        assert breaker.stats.total_successes == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_count_once(self, executor: Any, sleeps: Any) -> None:
        executor.failures["unfriend"] = [httpx.ConnectError("down")] * 4
        breaker = CircuitBreaker(failure_threshold=2, cooldown=60.0)
        dispatcher = make_dispatcher(executor, sleeps, breaker=breaker)

        with pytest.raises(httpx.ConnectError):
            await dispatcher.dispatch(OperationKind.UNFRIEND, {"friend_id": "f1"})

        assert len(executor.calls) == 4
        assert breaker.consecutive_failures == 1
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_breaker_skips_executor(self, executor: Any, sleeps: Any) -> None:
        executor.failures["unfriend"] = [httpx.ConnectError("down")] * 2
        dispatcher = make_dispatcher(executor, sleeps, max_retries=0)

        for _ in range(2):
            with pytest.raises(httpx.ConnectError):
                await dispatcher.dispatch(OperationKind.UNFRIEND, {"friend_id": "f1"})

        with pytest.raises(CircuitOpenError):
            await dispatcher.dispatch(OperationKind.UNBLOCK, {"user_id": "u1"})

        assert executor.methods() == ["unfriend", "unfriend"]
        assert dispatcher.breaker.state is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_skip_non_retryable(self, executor: Any, sleeps: Any) -> None:
        executor.failures["block_user"] = [ValueError("bad payload")]
        dispatcher = make_dispatcher(executor, sleeps, skip_non_retryable=True)

        with pytest.raises(ValueError):
            await dispatcher.dispatch(OperationKind.BLOCK, {"user_id": "u1"})

        assert len(executor.calls) == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_bad_payload_does_not_touch_breaker(
        self, executor: Any, sleeps: Any
    ) -> None:
        dispatcher = make_dispatcher(executor, sleeps)

        with pytest.raises(UnknownOperationError):
            await dispatcher.dispatch(OperationKind.UNFRIEND, {})

        assert dispatcher.breaker.stats.total_failures == 0
        assert executor.calls == []
