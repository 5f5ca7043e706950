"""Resilient delivery of friend mutations.

Architecture:
    FriendActions → OptimisticController → Dispatcher → CircuitBreaker → with_retry → executor
                                    │
                               (offline) → OfflineQueue ─(reconnect)→ Dispatcher

Components:
- **classify**: Turns an error into a retry decision and a user message
- **with_retry**: Bounded exponential backoff with jitter
- **CircuitBreaker**: Fails fast while the friends API keeps failing
- **Dispatcher**: Routes (kind, payload) to the executor method
- **OfflineQueue**: Durable FIFO drained when connectivity returns
- **OptimisticController**: Snapshot / apply / commit-or-rollback on the cache
- **NetworkMonitor**: Connectivity status and change notifications
"""

from friendsync.client.delivery.circuit_breaker import CircuitBreaker, CircuitBreakerStats
from friendsync.client.delivery.dispatcher import (
    OPERATIONS,
    Dispatcher,
    OperationExecutor,
    build_call_args,
)
from friendsync.client.delivery.errors import (
    ErrorCategory,
    ErrorClassification,
    classify,
    get_user_friendly_error_message,
    is_retryable,
    log_error,
)
from friendsync.client.delivery.network import (
    ConnectivityFlagMonitor,
    HealthCheckMonitor,
    NetworkMonitor,
    NetworkStatus,
    create_network_monitor,
)
from friendsync.client.delivery.optimistic import (
    OptimisticController,
    OptimisticMutation,
    OptimisticTransaction,
    with_item,
    without_id,
)
from friendsync.client.delivery.queue import OfflineQueue
from friendsync.client.delivery.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_JITTER,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    compute_backoff_delay,
    wait_for_network,
    with_retry,
)
from friendsync.client.delivery.types import (
    CircuitOpenError,
    CircuitState,
    DeliveryError,
    MutationResult,
    QueuedOperation,
    RetryAttempt,
    UnknownOperationError,
)

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerStats",
    # Dispatcher
    "OPERATIONS",
    "Dispatcher",
    "OperationExecutor",
    "build_call_args",
    # Errors
    "ErrorCategory",
    "ErrorClassification",
    "classify",
    "get_user_friendly_error_message",
    "is_retryable",
    "log_error",
    # Network
    "ConnectivityFlagMonitor",
    "HealthCheckMonitor",
    "NetworkMonitor",
    "NetworkStatus",
    "create_network_monitor",
    # Optimistic
    "OptimisticController",
    "OptimisticMutation",
    "OptimisticTransaction",
    "with_item",
    "without_id",
    # Queue
    "OfflineQueue",
    # Retry
    "DEFAULT_BASE_DELAY",
    "DEFAULT_JITTER",
    "DEFAULT_MAX_DELAY",
    "DEFAULT_MAX_RETRIES",
    "compute_backoff_delay",
    "wait_for_network",
    "with_retry",
    # Types
    "CircuitOpenError",
    "CircuitState",
    "DeliveryError",
    "MutationResult",
    "QueuedOperation",
    "RetryAttempt",
    "UnknownOperationError",
]
