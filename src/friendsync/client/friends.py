"""User-facing friend mutations.

This module provides:
- FriendActions: send/accept/reject/cancel friend requests, unfriend,
  block and unblock, each with an optimistic cache update

Every action follows the same path:

    1. Snapshot the affected cache keys and install the tentative state.
    2. Offline: hand the mutation to the offline queue, keep the tentative
       state, report it as queued.
    3. Online with earlier entries pending: drain them first. If some are
       still pending afterwards, queue the mutation behind them.
    4. Online: dispatch it. On success invalidate the affected keys. On a
       retryable failure (when enabled) queue it for later. Otherwise restore
       the snapshot and report the classified message.

Actions never raise; they return a MutationResult.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from friendsync.client.cache import (
    BLOCKED_LIST,
    FRIENDS_COUNT,
    FRIENDS_LIST,
    RECEIVED_REQUESTS,
    SENT_REQUESTS,
    CacheKey,
    is_blocked_key,
)
from friendsync.client.delivery.errors import log_error
from friendsync.client.delivery.optimistic import (
    OptimisticMutation,
    with_item,
    without_id,
)
from friendsync.client.delivery.types import MutationResult, QueuedOperation
from friendsync.core.types import OperationKind

if TYPE_CHECKING:
    from friendsync.client.context import DeliveryContext

logger = logging.getLogger(__name__)


def _decrement(count: int | None) -> int | None:
    if count is None:
        return None
    return max(0, count - 1)


def invalidation_keys(kind: OperationKind) -> list[CacheKey]:
    """Cache key prefixes made stale by a confirmed mutation."""
    if kind == OperationKind.SEND_REQUEST:
        return [SENT_REQUESTS]
    if kind == OperationKind.ACCEPT:
        return [RECEIVED_REQUESTS, ("friends",)]
    if kind == OperationKind.REJECT:
        return [RECEIVED_REQUESTS]
    if kind == OperationKind.CANCEL_REQUEST:
        return [SENT_REQUESTS]
    if kind == OperationKind.UNFRIEND:
        return [("friends",)]
    if kind in (OperationKind.BLOCK, OperationKind.UNBLOCK):
        # Blocking also removes friendships and pending requests
        return [("blocks",), ("friends",), ("friend-requests",)]
    return []


class FriendActions:
    """Friend mutations with optimistic updates and offline queueing."""

    def __init__(self, context: DeliveryContext) -> None:
        """Initialize and subscribe to queue outcomes.

        Args:
            context: The process delivery context.
        """
        self._context = context
        self._cache = context.cache
        self._queue = context.queue
        context.queue.subscribe(
            delivered=self._on_queued_delivered,
            dropped=self._on_queued_dropped,
        )

    # === Queue outcomes ===

    def _invalidate(self, kind: OperationKind) -> None:
        for prefix in invalidation_keys(kind):
            self._cache.invalidate(prefix)

    def _on_queued_delivered(self, operation: QueuedOperation) -> None:
        self._invalidate(operation.kind)

    def _on_queued_dropped(self, operation: QueuedOperation, error: BaseException) -> None:
        # The tentative state can no longer become true; refetch instead
        log_error(f"queued {operation.kind.value}", error, operation_id=operation.id)
        self._invalidate(operation.kind)

    # === Core path ===

    async def _mutate(
        self,
        kind: OperationKind,
        payload: dict[str, Any],
        mutation: OptimisticMutation,
    ) -> MutationResult:
        controller = self._context.optimistic

        async def enqueue() -> str:
            return await self._queue.add(kind, payload, drain=False)

        if not await self._queue.is_online():
            logger.info(f"Offline: queueing {kind.name}")
            return await controller.defer(mutation, enqueue)

        # Earlier mutations are delivered first; a later one never overtakes them
        if self._queue.get_queued_count():
            await self._queue.process_queue()
            pending = self._queue.get_queued_count()
            if pending:
                logger.info(f"{pending} earlier operations pending, queueing {kind.name} behind them")
                return await controller.defer(mutation, enqueue)

        defer = enqueue if self._context.config.queue.queue_on_failure else None
        return await controller.run(
            mutation,
            lambda: self._context.dispatcher.dispatch(kind, payload),
            defer=defer,
        )

    # === Friend requests ===

    async def send_request(self, receiver_id: str, message: str | None = None) -> MutationResult:
        """Send a friend request."""
        pending = {"id": f"pending:{receiver_id}", "receiver_id": receiver_id, "status": "pending"}
        payload: dict[str, Any] = {"receiver_id": receiver_id}
        if message is not None:
            payload["message"] = message
        mutation = OptimisticMutation(
            name="send_friend_request",
            updates={SENT_REQUESTS: lambda sent: with_item(sent, pending)},
            invalidate=invalidation_keys(OperationKind.SEND_REQUEST),
        )
        return await self._mutate(OperationKind.SEND_REQUEST, payload, mutation)

    async def accept_request(self, request_id: str) -> MutationResult:
        """Accept a received friend request."""
        mutation = OptimisticMutation(
            name="accept_friend_request",
            updates={RECEIVED_REQUESTS: lambda received: without_id(received, request_id)},
            invalidate=invalidation_keys(OperationKind.ACCEPT),
        )
        return await self._mutate(OperationKind.ACCEPT, {"request_id": request_id}, mutation)

    async def reject_request(self, request_id: str) -> MutationResult:
        """Reject a received friend request."""
        mutation = OptimisticMutation(
            name="reject_friend_request",
            updates={RECEIVED_REQUESTS: lambda received: without_id(received, request_id)},
            invalidate=invalidation_keys(OperationKind.REJECT),
        )
        return await self._mutate(OperationKind.REJECT, {"request_id": request_id}, mutation)

    async def cancel_request(self, request_id: str) -> MutationResult:
        """Cancel a friend request we sent."""
        mutation = OptimisticMutation(
            name="cancel_friend_request",
            updates={SENT_REQUESTS: lambda sent: without_id(sent, request_id)},
            invalidate=invalidation_keys(OperationKind.CANCEL_REQUEST),
        )
        return await self._mutate(
            OperationKind.CANCEL_REQUEST, {"request_id": request_id}, mutation
        )

    # === Friends ===

    async def unfriend(self, friend_id: str) -> MutationResult:
        """Remove a friend."""
        mutation = OptimisticMutation(
            name="unfriend",
            updates={
                FRIENDS_LIST: lambda friends: without_id(friends, friend_id),
                FRIENDS_COUNT: _decrement,
            },
            invalidate=invalidation_keys(OperationKind.UNFRIEND),
        )
        return await self._mutate(OperationKind.UNFRIEND, {"friend_id": friend_id}, mutation)

    # === Blocking ===

    async def block_user(self, user_id: str, reason: str | None = None) -> MutationResult:
        """Block a user (also removes them from the cached friends list)."""
        payload: dict[str, Any] = {"user_id": user_id}
        if reason is not None:
            payload["reason"] = reason
        blocked = {"id": user_id, "reason": reason}
        mutation = OptimisticMutation(
            name="block_user",
            updates={
                is_blocked_key(user_id): lambda _: True,
                BLOCKED_LIST: lambda users: with_item(users, blocked),
                FRIENDS_LIST: lambda friends: without_id(friends, user_id),
            },
            invalidate=invalidation_keys(OperationKind.BLOCK),
        )
        return await self._mutate(OperationKind.BLOCK, payload, mutation)

    async def unblock_user(self, user_id: str) -> MutationResult:
        """Unblock a user."""
        mutation = OptimisticMutation(
            name="unblock_user",
            updates={
                is_blocked_key(user_id): lambda _: False,
                BLOCKED_LIST: lambda users: without_id(users, user_id),
            },
            invalidate=invalidation_keys(OperationKind.UNBLOCK),
        )
        return await self._mutate(OperationKind.UNBLOCK, {"user_id": user_id}, mutation)
