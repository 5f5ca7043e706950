"""Tests for delivery context wiring."""

from __future__ import annotations

from typing import Any

import pytest

from friendsync.client.cache import QueryCache
from friendsync.client.context import create_delivery_context
from friendsync.client.delivery.network import ConnectivityFlagMonitor, HealthCheckMonitor
from friendsync.client.storage import MemoryKeyValueStore
from friendsync.core.config import BreakerConfig, DeliveryConfig, QueueConfig
from friendsync.core.types import OperationKind


class TestCreateDeliveryContext:
    """Tests for create_delivery_context()."""

    def test_defaults_use_health_monitor(self, executor: Any, store: MemoryKeyValueStore) -> None:
        """The executor's health_check becomes the probe."""
        context = create_delivery_context(executor, store)

        assert isinstance(context.monitor, HealthCheckMonitor)
        assert context.breaker.failure_threshold == 5
        assert context.queue.max_retries == 3
        assert context.queue.storage_key == "offline_queue_friends"

    def test_flag_monitor_from_config(self, executor: Any, store: MemoryKeyValueStore) -> None:
        config = DeliveryConfig(queue=QueueConfig(network_monitor="flag"))
        context = create_delivery_context(executor, store, config=config)
        assert isinstance(context.monitor, ConnectivityFlagMonitor)

    def test_health_monitor_needs_probe(self, store: MemoryKeyValueStore) -> None:
        """An executor without health_check cannot back the health monitor."""
        with pytest.raises(ValueError, match="probe"):
            create_delivery_context(object(), store)  # type: ignore[arg-type]

    def test_settings_applied(self, executor: Any, store: MemoryKeyValueStore) -> None:
        config = DeliveryConfig(
            breaker=BreakerConfig(failure_threshold=2, cooldown=5.0),
            queue=QueueConfig(max_retries=7, storage_key="q", network_monitor="flag"),
        )
        cache = QueryCache()

        context = create_delivery_context(executor, store, config=config, cache=cache)

        assert context.breaker.cooldown == 5.0
        assert context.queue.max_retries == 7
        assert context.queue.storage_key == "q"
        assert context.cache is cache
        assert context.optimistic.cache is cache

    @pytest.mark.asyncio
    async def test_loads_persisted_queue(
        self, executor: Any, store: MemoryKeyValueStore, sleeps: Any
    ) -> None:
        offline = ConnectivityFlagMonitor(connected=False)
        first = create_delivery_context(executor, store, monitor=offline)
        await first.queue.add(OperationKind.UNFRIEND, {"friend_id": "f1"})

        second = create_delivery_context(executor, store, monitor=offline, sleep=sleeps)

        assert second.queue.get_queued_count() == 1

    @pytest.mark.asyncio
    async def test_resume_drains_when_online(
        self, executor: Any, store: MemoryKeyValueStore, monitor: ConnectivityFlagMonitor
    ) -> None:
        context = create_delivery_context(executor, store, monitor=monitor)
        await context.queue.add(OperationKind.UNFRIEND, {"friend_id": "f1"}, drain=False)

        await context.resume()

        assert context.queue.get_queued_count() == 0
        assert executor.methods() == ["unfriend"]

    @pytest.mark.asyncio
    async def test_resume_offline_keeps_queue(
        self, executor: Any, store: MemoryKeyValueStore
    ) -> None:
        context = create_delivery_context(
            executor, store, monitor=ConnectivityFlagMonitor(connected=False)
        )
        await context.queue.add(OperationKind.UNFRIEND, {"friend_id": "f1"})

        await context.resume()

        assert context.queue.get_queued_count() == 1

    @pytest.mark.asyncio
    async def test_start_and_close(
        self, executor: Any, store: MemoryKeyValueStore, monitor: ConnectivityFlagMonitor
    ) -> None:
        context = create_delivery_context(executor, store, monitor=monitor)

        context.start()
        assert monitor.listener_count == 1

        await context.close()
        assert monitor.listener_count == 0
