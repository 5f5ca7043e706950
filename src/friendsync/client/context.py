"""Process-wide wiring of the delivery pipeline.

One DeliveryContext is created at startup and passed to whoever needs the
queue, the breaker or the cache. Nothing in the delivery package keeps
module-level instances.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from friendsync.client.cache import QueryCache
from friendsync.client.delivery.circuit_breaker import CircuitBreaker
from friendsync.client.delivery.dispatcher import Dispatcher, OperationExecutor
from friendsync.client.delivery.network import NetworkMonitor, create_network_monitor
from friendsync.client.delivery.optimistic import OptimisticController
from friendsync.client.delivery.queue import OfflineQueue
from friendsync.client.delivery.retry import SleepFunc
from friendsync.core.config import DeliveryConfig

if TYPE_CHECKING:
    from friendsync.client.delivery.network import HealthProbe
    from friendsync.client.delivery.types import DropCallback, OperationCallback
    from friendsync.client.storage import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class DeliveryContext:
    """The single set of delivery components of this process."""

    config: DeliveryConfig
    executor: OperationExecutor
    breaker: CircuitBreaker
    dispatcher: Dispatcher
    monitor: NetworkMonitor
    queue: OfflineQueue
    cache: QueryCache
    optimistic: OptimisticController

    def start(self) -> None:
        """Drain on reconnect from now on, and start the monitor."""
        self.queue.attach()
        self.monitor.start()

    async def resume(self) -> None:
        """Host application came back to the foreground."""
        if await self.queue.is_online():
            await self.queue.process_queue()

    async def close(self) -> None:
        """Stop the monitor and the reconnect subscription."""
        self.queue.detach()
        await self.monitor.stop()


def create_delivery_context(
    executor: OperationExecutor,
    store: KeyValueStore,
    config: DeliveryConfig | None = None,
    monitor: NetworkMonitor | None = None,
    probe: HealthProbe | None = None,
    cache: QueryCache | None = None,
    sleep: SleepFunc = asyncio.sleep,
    on_delivered: OperationCallback | None = None,
    on_dropped: DropCallback | None = None,
) -> DeliveryContext:
    """Build the delivery components.

    Args:
        executor: Remote executor (usually a FriendsClient).
        store: Persistent store holding the offline queue.
        config: Pipeline settings (defaults if None).
        monitor: Network monitor; created from config.queue.network_monitor if None.
        probe: Health probe for the "health" monitor; defaults to
            executor.health_check when the executor has one.
        cache: Query cache (new empty cache if None).
        sleep: Awaitable sleep used between retries.
        on_delivered: Queue delivery callback.
        on_dropped: Queue drop callback.
    """
    config = config or DeliveryConfig()

    if monitor is None:
        if probe is None:
            probe = getattr(executor, "health_check", None)
        monitor = create_network_monitor(
            config.queue.network_monitor,
            probe=probe,
            check_interval=config.queue.check_interval,
        )

    breaker = CircuitBreaker(
        failure_threshold=config.breaker.failure_threshold,
        cooldown=config.breaker.cooldown,
        name="friends",
    )
    dispatcher = Dispatcher(executor, breaker, config.retry, sleep=sleep)
    queue = OfflineQueue(
        dispatcher.dispatch,
        store,
        monitor,
        max_retries=config.queue.max_retries,
        storage_key=config.queue.storage_key,
        on_delivered=on_delivered,
        on_dropped=on_dropped,
    )
    cache = cache if cache is not None else QueryCache()

    logger.debug(
        "Delivery context created (monitor=%s, queued=%d)",
        type(monitor).__name__,
        queue.get_queued_count(),
    )
    return DeliveryContext(
        config=config,
        executor=executor,
        breaker=breaker,
        dispatcher=dispatcher,
        monitor=monitor,
        queue=queue,
        cache=cache,
        optimistic=OptimisticController(cache),
    )
