"""Network status monitoring.

This module provides:
- NetworkStatus: Snapshot of connectivity
- NetworkMonitor: Interface consumed by the offline queue
- ConnectivityFlagMonitor: Passive connected/disconnected flag set by the host
- HealthCheckMonitor: Polls the server health endpoint and pushes transitions
- create_network_monitor: Picks an implementation at startup

Listeners are coroutine functions receiving the new NetworkStatus. They are
called only on transitions (connected -> disconnected or the reverse).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkStatus:
    """Connectivity snapshot."""

    connected: bool
    connection_type: str = "unknown"


NetworkListener = Callable[[NetworkStatus], Awaitable[None]]
HealthProbe = Callable[[], Awaitable[bool]]


class NetworkMonitor:
    """Base class for network monitors.

    Subclasses implement get_status(); listener bookkeeping and
    notification live here.
    """

    def __init__(self) -> None:
        self._listeners: list[NetworkListener] = []

    async def get_status(self) -> NetworkStatus:
        raise NotImplementedError

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]:
        """Subscribe to connectivity changes.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def _notify(self, status: NetworkStatus) -> None:
        logger.info(
            "Network status changed: %s", "connected" if status.connected else "disconnected"
        )
        for listener in list(self._listeners):
            try:
                await listener(status)
            except Exception:
                logger.exception("Network listener failed")

    def start(self) -> None:
        """Start monitoring (no-op for passive monitors)."""

    async def stop(self) -> None:
        """Stop monitoring (no-op for passive monitors)."""


class ConnectivityFlagMonitor(NetworkMonitor):
    """Connectivity flag set by the host application.

    Used where no push-based platform monitor exists; the host flips the
    flag when it learns about connectivity changes.
    """

    def __init__(self, connected: bool = True) -> None:
        super().__init__()
        self._connected = connected

    @property
    def connected(self) -> bool:
        return self._connected

    async def get_status(self) -> NetworkStatus:
        return NetworkStatus(connected=self._connected)

    async def set_connected(self, connected: bool) -> None:
        """Update the flag and notify listeners if it changed."""
        if connected == self._connected:
            return
        self._connected = connected
        await self._notify(NetworkStatus(connected=connected))


class HealthCheckMonitor(NetworkMonitor):
    """Push-based monitor driven by periodic health checks.

    Polls the probe every check_interval seconds in a background task and
    notifies listeners when the result changes. While polling, get_status()
    returns the last known status; otherwise it probes on every call.
    """

    def __init__(
        self,
        probe: HealthProbe,
        check_interval: float = 5.0,
    ) -> None:
        """Initialize the monitor.

        Args:
            probe: Coroutine function returning True when the server is reachable.
            check_interval: Seconds between probes.
        """
        super().__init__()
        self._probe = probe
        self._check_interval = check_interval
        self._last: NetworkStatus | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _check(self) -> NetworkStatus:
        try:
            connected = await self._probe()
        except Exception as e:
            logger.debug(f"Health probe failed: {e}")
            connected = False
        return NetworkStatus(connected=connected, connection_type="http")

    async def get_status(self) -> NetworkStatus:
        # Without the poller nothing refreshes _last, so probe every time
        if self._last is None or not self.running:
            self._last = await self._check()
        return self._last

    async def poll_once(self) -> NetworkStatus:
        """Probe now and notify listeners on a transition."""
        status = await self._check()
        previous = self._last
        self._last = status
        if previous is not None and previous.connected != status.connected:
            await self._notify(status)
        return status

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._check_interval)

    def start(self) -> None:
        """Start polling in the running event loop."""
        if self.running:
            logger.warning("HealthCheckMonitor already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Health check monitor started (every {self._check_interval}s)")

    async def stop(self) -> None:
        """Stop polling."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Health check monitor stopped")


def create_network_monitor(
    kind: str,
    probe: HealthProbe | None = None,
    check_interval: float = 5.0,
    connected: bool = True,
) -> NetworkMonitor:
    """Create the network monitor for this host.

    Args:
        kind: "health" for a polling monitor, "flag" for a passive flag.
        probe: Health probe, required for "health".
        check_interval: Polling interval for "health".
        connected: Initial flag value for "flag".
    """
    if kind == "health":
        if probe is None:
            raise ValueError("A health probe is required for the health monitor")
        return HealthCheckMonitor(probe, check_interval=check_interval)
    if kind == "flag":
        return ConnectivityFlagMonitor(connected=connected)
    raise ValueError(f"Unknown network monitor: {kind}")
