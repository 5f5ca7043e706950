"""Core module - Shared configuration and types."""

from friendsync.core.config import (
    BreakerConfig,
    DeliveryConfig,
    QueueConfig,
    RetryConfig,
    ServerConfig,
)
from friendsync.core.types import DeliveryState, OperationKind

__all__ = [
    # Config
    "BreakerConfig",
    "DeliveryConfig",
    "QueueConfig",
    "RetryConfig",
    "ServerConfig",
    # Types
    "DeliveryState",
    "OperationKind",
]
