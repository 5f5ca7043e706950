"""Offline queue for friend mutations.

This module provides:
- OfflineQueue: Durable, deduplicated FIFO of pending mutations that drains
  itself when connectivity is available

Mutations made while offline are appended here and delivered later, in
arrival order, through the same dispatch path as online mutations.

Ordering:
    Draining stops at the first entry that fails without having reached the
    retry limit. Later entries wait behind it instead of being skipped, so
    causally dependent operations (send then cancel) are never reordered.
    An entry that reaches the limit is dropped and draining continues.

Persistence:
    The queue is stored as one JSON array under a fixed key:

        [{"id": str, "type": str, "payload": {...}, "timestamp": ms, "retries": int}]

    It is loaded once at construction and rewritten after every change.

Concurrency:
    A single "processing" flag guards draining. A process_queue() call made
    while a drain is active returns at once; the active drain picks up any
    entry added in the meantime.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from friendsync.client.delivery.types import (
    DispatchFunc,
    DropCallback,
    OperationCallback,
    QueuedOperation,
    payload_key,
)
from friendsync.core.types import DeliveryState, OperationKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from friendsync.client.delivery.network import NetworkMonitor, NetworkStatus
    from friendsync.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "offline_queue_friends"
DEFAULT_MAX_RETRIES = 3


class OfflineQueue:
    """Durable FIFO of pending friend mutations.

    Attributes:
        max_retries: Failed drain attempts before an entry is dropped.
        storage_key: Key the queue is persisted under.
    """

    def __init__(
        self,
        dispatch: DispatchFunc,
        store: KeyValueStore,
        monitor: NetworkMonitor,
        max_retries: int = DEFAULT_MAX_RETRIES,
        storage_key: str = DEFAULT_STORAGE_KEY,
        on_delivered: OperationCallback | None = None,
        on_dropped: DropCallback | None = None,
    ) -> None:
        """Initialize the queue and load persisted entries.

        Args:
            dispatch: Coroutine function delivering one (kind, payload).
            store: Persistent key-value store.
            monitor: Network monitor used by is_online() and attach().
            max_retries: Failed drain attempts before dropping an entry.
            storage_key: Key the queue is persisted under.
            on_delivered: Called after an entry was delivered.
            on_dropped: Called after an entry was dropped, with the last error.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self._dispatch = dispatch
        self._store = store
        self._monitor = monitor
        self._max_retries = max_retries
        self._storage_key = storage_key
        self._delivered_callbacks: list[OperationCallback] = []
        self._dropped_callbacks: list[DropCallback] = []
        self.subscribe(delivered=on_delivered, dropped=on_dropped)

        self._queue: list[QueuedOperation] = []
        self._processing = False
        self._unsubscribe: Callable[[], None] | None = None

        self._load()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def is_processing(self) -> bool:
        return self._processing

    # === Persistence ===

    def _load(self) -> None:
        """Load entries from the store, starting empty on unreadable data."""
        raw = self._store.get(self._storage_key)
        if not raw:
            return
        try:
            items = json.loads(raw)
            self._queue = [QueuedOperation.from_dict(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load queue from storage, starting empty: {e}")
            self._queue = []
            return
        logger.info(f"Loaded {len(self._queue)} queued operations from storage")

    def _save(self) -> None:
        """Persist the queue; a failed write is logged and the in-memory queue kept."""
        data = json.dumps([op.to_dict() for op in self._queue])
        try:
            self._store.set(self._storage_key, data)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to persist queue ({len(self._queue)} entries): {e}")
            return
        logger.debug(f"Persisted queue ({len(self._queue)} entries)")

    # === Public API ===

    async def add(
        self,
        kind: OperationKind,
        payload: dict[str, Any],
        *,
        drain: bool = True,
    ) -> str:
        """Add a mutation to the queue.

        A mutation structurally identical to a pending one is not added
        again; the pending entry's id is returned instead.

        Args:
            kind: Operation kind.
            payload: JSON-serializable keyword arguments of the operation.
            drain: Try to drain right away if online.

        Returns:
            Id of the new or already pending entry.
        """
        kind = OperationKind(kind)
        key = (kind, payload_key(payload))
        for existing in self._queue:
            if existing.dedup_key == key:
                logger.info(f"Duplicate {kind.name} operation, keeping {existing.id}")
                return existing.id

        operation = QueuedOperation.create(kind, payload)
        self._queue.append(operation)
        self._save()
        logger.info(f"Queued {kind.name} operation ({len(self._queue)} total)")

        if drain and await self.is_online():
            await self.process_queue()

        return operation.id

    async def process_queue(self) -> None:
        """Deliver queued entries in order.

        Never raises: delivery failures are counted against the entry and
        logged, and so are errors from delivered/dropped callbacks.
        """
        if self._processing or not self._queue:
            return

        self._processing = True
        logger.info(f"Processing {len(self._queue)} queued operations...")
        try:
            while self._queue:
                operation = self._queue[0]
                logger.debug(f"Executing {operation} (attempt {operation.retry_count + 1})")
                try:
                    await self._dispatch(operation.kind, operation.payload)
                except Exception as e:
                    operation.retry_count += 1
                    if operation.retry_count >= self._max_retries:
                        logger.error(
                            f"Max retries ({self._max_retries}) reached, dropping {operation}: {e}"
                        )
                        self._remove_head(operation)
                        self._save()
                        self._notify_dropped(operation, e)
                        continue

                    logger.warning(
                        f"{operation} failed ({operation.retry_count}/{self._max_retries}), "
                        f"will retry later: {e}"
                    )
                    self._save()
                    break

                self._remove_head(operation)
                self._save()
                logger.info(f"{operation} delivered ({len(self._queue)} remaining)")
                self._notify_delivered(operation)
        finally:
            self._processing = False

        if not self._queue:
            logger.info("Queue processing complete, all operations delivered")

    def _notify_delivered(self, operation: QueuedOperation) -> None:
        for callback in self._delivered_callbacks:
            try:
                callback(operation)
            except Exception:
                logger.exception(f"Delivered callback failed for {operation}")

    def _notify_dropped(self, operation: QueuedOperation, error: BaseException) -> None:
        for callback in self._dropped_callbacks:
            try:
                callback(operation, error)
            except Exception:
                logger.exception(f"Dropped callback failed for {operation}")

    def _remove_head(self, operation: QueuedOperation) -> None:
        # clear_queue() may have run during the await
        if self._queue and self._queue[0] is operation:
            self._queue.pop(0)

    def get_queued_count(self) -> int:
        return len(self._queue)

    def get_queue(self) -> list[QueuedOperation]:
        """Get a copy of the pending entries in delivery order."""
        return [
            QueuedOperation(
                id=op.id,
                kind=op.kind,
                payload=dict(op.payload),
                enqueued_at=op.enqueued_at,
                retry_count=op.retry_count,
            )
            for op in self._queue
        ]

    def clear_queue(self) -> int:
        """Remove every pending entry.

        Returns:
            Number of entries removed.
        """
        count = len(self._queue)
        self._queue = []
        self._save()
        logger.info(f"Cleared {count} operations from queue")
        return count

    async def is_online(self) -> bool:
        """Check connectivity through the network monitor."""
        try:
            status = await self._monitor.get_status()
        except Exception as e:
            logger.error(f"Failed to check network status: {e}")
            return False
        return status.connected

    async def state(self) -> DeliveryState:
        """Coarse delivery state for status reporting."""
        if self._processing:
            return DeliveryState.DRAINING
        if not await self.is_online():
            return DeliveryState.OFFLINE
        return DeliveryState.IDLE

    def subscribe(
        self,
        delivered: OperationCallback | None = None,
        dropped: DropCallback | None = None,
    ) -> None:
        """Register callbacks for delivered and dropped entries."""
        if delivered is not None:
            self._delivered_callbacks.append(delivered)
        if dropped is not None:
            self._dropped_callbacks.append(dropped)

    # === Network wiring ===

    async def _on_network_change(self, status: NetworkStatus) -> None:
        if status.connected and self._queue and not self._processing:
            logger.info("Network reconnected, processing queue...")
            await self.process_queue()

    def attach(self) -> None:
        """Drain automatically when the monitor reports a reconnect."""
        if self._unsubscribe is None:
            self._unsubscribe = self._monitor.add_listener(self._on_network_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[QueuedOperation]:
        return iter(self.get_queue())

    def __bool__(self) -> bool:
        return bool(self._queue)
