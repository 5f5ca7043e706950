"""Shared configuration classes for friendsync.

This module defines the configuration used to reach the friends API and to
tune the mutation delivery pipeline (retry, circuit breaker, offline queue).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class ServerConfig:
    """Configuration for connecting to the friends API.

    Attributes:
        server_url: Base URL of the server (e.g., "https://api.example.com").
        token: Bearer token for the signed-in user.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def health_url(self) -> str:
        """Get the URL polled by the health-check network monitor."""
        return f"{self.server_url}/health"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class RetryConfig:
    """Exponential backoff settings for a single dispatch.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        base_delay: Delay in seconds before the first retry, doubled each attempt.
        max_delay: Upper bound for any single delay in seconds.
        jitter: Upper bound of the random offset added to each delay, in seconds.
        skip_non_retryable: Re-raise immediately on errors the classifier
            marks as non-retryable instead of retrying them.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 1.0
    skip_non_retryable: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative")


@dataclass
class BreakerConfig:
    """Circuit breaker settings.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        cooldown: Seconds the circuit stays open before a probe is allowed.
    """

    failure_threshold: int = 5
    cooldown: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.cooldown <= 0:
            raise ValueError("cooldown must be positive")


@dataclass
class QueueConfig:
    """Offline queue settings.

    Attributes:
        max_retries: Failed drain attempts before an entry is dropped.
        storage_key: Key the queue is persisted under.
        queue_on_failure: Enqueue a mutation whose online dispatch failed
            with a retryable error instead of rolling it back.
        network_monitor: "health" (polls the server) or "flag" (passive flag).
        check_interval: Seconds between health polls.
    """

    max_retries: int = 3
    storage_key: str = "offline_queue_friends"
    queue_on_failure: bool = True
    network_monitor: str = "health"
    check_interval: float = 5.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.network_monitor not in ("health", "flag"):
            raise ValueError(f"Unknown network monitor: {self.network_monitor}")


def _section(cls: type, data: dict[str, Any] | None) -> Any:
    """Build a config section, ignoring unknown keys."""
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class DeliveryConfig:
    """All settings of the mutation delivery pipeline."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DeliveryConfig:
        """Create from the "delivery" section of the config file.

        Missing sections fall back to defaults.
        """
        data = data or {}
        return cls(
            retry=_section(RetryConfig, data.get("retry")),
            breaker=_section(BreakerConfig, data.get("breaker")),
            queue=_section(QueueConfig, data.get("queue")),
        )
