"""Dispatch of friend mutations to the remote executor.

Every dispatch goes through the circuit breaker, then the retry executor,
then the executor method matching the operation kind:

    dispatch(kind, payload)
        -> CircuitBreaker.execute
            -> with_retry
                -> executor.<method>(**payload)

The offline queue only sees the dispatch callable, never the executor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from friendsync.client.delivery.circuit_breaker import CircuitBreaker
from friendsync.client.delivery.errors import is_retryable
from friendsync.client.delivery.retry import SleepFunc, with_retry
from friendsync.client.delivery.types import UnknownOperationError
from friendsync.core.config import RetryConfig
from friendsync.core.types import OperationKind

logger = logging.getLogger(__name__)


class OperationExecutor(Protocol):
    """Remote executor with one coroutine method per operation kind."""

    async def send_friend_request(self, receiver_id: str, message: str | None = None) -> Any: ...

    async def accept_friend_request(self, request_id: str) -> Any: ...

    async def reject_friend_request(self, request_id: str) -> Any: ...

    async def cancel_friend_request(self, request_id: str) -> Any: ...

    async def unfriend(self, friend_id: str) -> Any: ...

    async def block_user(self, user_id: str, reason: str | None = None) -> Any: ...

    async def unblock_user(self, user_id: str) -> Any: ...


# kind -> (executor method, required payload keys, optional payload keys)
OPERATIONS: dict[OperationKind, tuple[str, tuple[str, ...], tuple[str, ...]]] = {
    OperationKind.SEND_REQUEST: ("send_friend_request", ("receiver_id",), ("message",)),
    OperationKind.ACCEPT: ("accept_friend_request", ("request_id",), ()),
    OperationKind.REJECT: ("reject_friend_request", ("request_id",), ()),
    OperationKind.CANCEL_REQUEST: ("cancel_friend_request", ("request_id",), ()),
    OperationKind.UNFRIEND: ("unfriend", ("friend_id",), ()),
    OperationKind.BLOCK: ("block_user", ("user_id",), ("reason",)),
    OperationKind.UNBLOCK: ("unblock_user", ("user_id",), ()),
}


def build_call_args(kind: OperationKind, payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Resolve the executor method name and keyword arguments for a payload.

    Raises:
        UnknownOperationError: If the kind is unknown or a required key is missing.
    """
    try:
        method, required, optional = OPERATIONS[OperationKind(kind)]
    except (KeyError, ValueError):
        raise UnknownOperationError(f"Unknown operation type: {kind}") from None

    missing = [key for key in required if key not in payload]
    if missing:
        raise UnknownOperationError(
            f"Payload for {kind} is missing {', '.join(missing)}"
        )
    kwargs = {key: payload[key] for key in required}
    kwargs.update({key: payload[key] for key in optional if payload.get(key) is not None})
    return method, kwargs


class Dispatcher:
    """Routes (kind, payload) to the executor through breaker and retry."""

    def __init__(
        self,
        executor: OperationExecutor,
        breaker: CircuitBreaker,
        retry_config: RetryConfig | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            executor: Remote executor implementing every operation kind.
            breaker: Circuit breaker shared by all friend mutations.
            retry_config: Backoff settings (defaults if None).
            sleep: Awaitable sleep used between retries, replaced by tests.
        """
        self._executor = executor
        self._breaker = breaker
        self._retry = retry_config or RetryConfig()
        self._sleep = sleep

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def dispatch(self, kind: OperationKind, payload: dict[str, Any]) -> Any:
        """Run one mutation against the remote executor.

        Returns:
            Whatever the executor method returned.

        Raises:
            UnknownOperationError: Bad kind or payload (breaker not involved).
            CircuitOpenError: The breaker rejected the call.
            Exception: The last executor error after retries were exhausted.
        """
        method_name, kwargs = build_call_args(kind, payload)
        method = getattr(self._executor, method_name)
        retry = self._retry

        async def _attempt() -> Any:
            return await method(**kwargs)

        async def _with_retry() -> Any:
            return await with_retry(
                _attempt,
                max_retries=retry.max_retries,
                base_delay=retry.base_delay,
                max_delay=retry.max_delay,
                jitter=retry.jitter,
                sleep=self._sleep,
                should_retry=is_retryable if retry.skip_non_retryable else None,
            )

        logger.debug("Dispatching %s %s", OperationKind(kind).name, kwargs)
        return await self._breaker.execute(_with_retry)

    __call__ = dispatch
