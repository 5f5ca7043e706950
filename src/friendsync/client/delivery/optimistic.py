"""Optimistic updates of the local query cache.

A mutation site describes its tentative change as an OptimisticMutation:
which cache keys to rewrite (and how), and which key prefixes to invalidate
once the server confirmed. The controller snapshots, applies, and then
either commits, rolls back, or keeps the tentative state when the mutation is
handed off for later delivery.

    mutation = OptimisticMutation(
        name="unfriend",
        updates={FRIENDS_LIST: lambda friends: without_id(friends, friend_id)},
        invalidate=[("friends",)],
    )
    result = await controller.run(mutation, lambda: dispatcher.dispatch(...))
    result = await controller.defer(mutation, lambda: queue.add(...))
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from friendsync.client.cache import CacheKey, QueryCache
from friendsync.client.delivery.errors import ErrorClassification, classify, log_error
from friendsync.client.delivery.types import DeliveryError, MutationResult

logger = logging.getLogger(__name__)

_MISSING = object()

Updater = Callable[[Any], Any]
DeferFunc = Callable[[], Awaitable[str]]


def without_id(items: list[dict[str, Any]] | None, item_id: str) -> list[dict[str, Any]] | None:
    """Copy of a cached list without the entry whose "id" is item_id."""
    if items is None:
        return None
    return [item for item in items if item.get("id") != item_id]


def with_item(items: list[dict[str, Any]] | None, item: dict[str, Any]) -> list[dict[str, Any]] | None:
    """Copy of a cached list with item appended (unless its id is present)."""
    if items is None:
        return None
    if any(existing.get("id") == item.get("id") for existing in items):
        return list(items)
    return [*items, item]


@dataclass
class OptimisticMutation:
    """Tentative change of one mutation site.

    Attributes:
        name: Used in log messages.
        updates: Cache key -> function computing the tentative value from the
            current one (None when absent). Returning None leaves the key alone.
        invalidate: Key prefixes invalidated once the server confirmed.
    """

    name: str
    updates: dict[CacheKey, Updater] = field(default_factory=dict)
    invalidate: list[CacheKey] = field(default_factory=list)


class TransactionResolvedError(DeliveryError):
    """commit() or rollback() called on a resolved transaction."""


class OptimisticTransaction:
    """Snapshot plus tentative state of one in-flight mutation."""

    def __init__(self, cache: QueryCache, mutation: OptimisticMutation) -> None:
        self._cache = cache
        self._mutation = mutation
        self._previous: dict[CacheKey, Any] = {}
        self._tentative: dict[CacheKey, Any] = {}
        self._resolved = False

    @property
    def name(self) -> str:
        return self._mutation.name

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def previous_snapshot(self) -> dict[CacheKey, Any]:
        """Values before the change (absent keys are omitted)."""
        return {k: v for k, v in self._previous.items() if v is not _MISSING}

    @property
    def tentative_snapshot(self) -> dict[CacheKey, Any]:
        return dict(self._tentative)

    def apply(self) -> None:
        """Snapshot each key and install its tentative value."""
        for key, updater in self._mutation.updates.items():
            present = self._cache.contains(key)
            current = self._cache.read(key) if present else None
            tentative = updater(copy.deepcopy(current))
            if tentative is None:
                continue
            self._previous[key] = copy.deepcopy(current) if present else _MISSING
            self._tentative[key] = tentative
            self._cache.write(key, tentative)
        logger.debug("Applied optimistic %s to %d keys", self.name, len(self._tentative))

    def _resolve(self) -> None:
        if self._resolved:
            raise TransactionResolvedError(f"Transaction {self.name} already resolved")
        self._resolved = True

    def commit(self) -> list[CacheKey]:
        """Invalidate the affected keys so authoritative data replaces them.

        Returns:
            Keys that were dropped from the cache.
        """
        self._resolve()
        dropped: list[CacheKey] = []
        for prefix in self._mutation.invalidate:
            dropped.extend(self._cache.invalidate(prefix))
        return dropped

    def keep(self) -> None:
        """Resolve without touching the cache (mutation handed to the queue)."""
        self._resolve()

    def rollback(self) -> None:
        """Restore exactly the pre-mutation values."""
        self._resolve()
        for key, value in self._previous.items():
            if value is _MISSING:
                self._cache.remove(key)
            else:
                self._cache.write(key, value)
        logger.info("Rolled back optimistic %s", self.name)


class OptimisticController:
    """Runs mutations with optimistic cache updates."""

    def __init__(self, cache: QueryCache) -> None:
        self._cache = cache

    @property
    def cache(self) -> QueryCache:
        return self._cache

    def begin(self, mutation: OptimisticMutation) -> OptimisticTransaction:
        """Snapshot and apply the tentative change."""
        transaction = OptimisticTransaction(self._cache, mutation)
        transaction.apply()
        return transaction

    async def run(
        self,
        mutation: OptimisticMutation,
        operation: Callable[[], Awaitable[Any]],
        defer: DeferFunc | None = None,
    ) -> MutationResult:
        """Apply, dispatch, then commit or roll back.

        Never raises for operation failures: they come back as a failed
        MutationResult with the classified user message.

        Args:
            mutation: The tentative change.
            operation: Coroutine function performing the remote call.
            defer: Hands the mutation off for later delivery after a
                retryable failure; returns the id it was deferred under.
                The tentative state is then kept.
        """
        transaction = self.begin(mutation)
        try:
            data = await operation()
        except Exception as e:
            classification = classify(e)
            log_error(mutation.name, e, category=classification.category.value)
            if defer is not None and classification.retryable:
                return await self._hand_off(transaction, defer, classification)
            transaction.rollback()
            return MutationResult(
                success=False,
                message=classification.user_message,
                category=classification.category,
            )
        transaction.commit()
        return MutationResult(success=True, data=data)

    async def defer(self, mutation: OptimisticMutation, defer: DeferFunc) -> MutationResult:
        """Apply the tentative change and hand the mutation off without dispatching."""
        return await self._hand_off(self.begin(mutation), defer, None)

    async def _hand_off(
        self,
        transaction: OptimisticTransaction,
        defer: DeferFunc,
        classification: ErrorClassification | None,
    ) -> MutationResult:
        try:
            operation_id = await defer()
        except Exception as e:
            transaction.rollback()
            failure = classify(e)
            log_error(f"defer {transaction.name}", e, category=failure.category.value)
            return MutationResult(
                success=False,
                message=failure.user_message,
                category=failure.category,
            )

        transaction.keep()
        logger.info(f"Deferred {transaction.name} as {operation_id}")
        if classification is None:
            return MutationResult(success=True, queued=True, operation_id=operation_id)
        return MutationResult(
            success=True,
            queued=True,
            operation_id=operation_id,
            message=classification.user_message,
            category=classification.category,
        )
