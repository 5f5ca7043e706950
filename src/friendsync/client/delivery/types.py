"""Shared types and dataclasses for mutation delivery.

This module provides:
- DeliveryError, CircuitOpenError, UnknownOperationError: Exception classes
- QueuedOperation: A pending mutation in the offline queue
- CircuitState: Circuit breaker states
- RetryAttempt: One scheduled retry (ephemeral)
- MutationResult: Outcome of a user-initiated mutation
- Type aliases for callbacks
"""

from __future__ import annotations

import json
import math
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from friendsync.core.types import OperationKind

if TYPE_CHECKING:
    from friendsync.client.delivery.errors import ErrorCategory


class DeliveryError(Exception):
    """Base exception for delivery errors."""


class CircuitOpenError(DeliveryError):
    """The circuit breaker is open and rejected the call without running it.

    Attributes:
        remaining: Seconds until the breaker allows a probe.
    """

    def __init__(self, remaining: float, name: str = "friends") -> None:
        self.remaining = max(0.0, remaining)
        self.name = name
        super().__init__(
            f"Circuit breaker is OPEN. Service unavailable. "
            f"Try again in {math.ceil(self.remaining)}s."
        )


class UnknownOperationError(DeliveryError):
    """The operation kind has no executor method."""


class CircuitState(str, Enum):
    """State of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def payload_key(payload: dict[str, Any]) -> str:
    """Canonical form of a payload used for structural equality."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass
class QueuedOperation:
    """A friend mutation waiting in the offline queue.

    Attributes:
        id: Opaque identifier returned to the caller.
        kind: Which mutation to run.
        payload: Keyword arguments of the mutation.
        enqueued_at: Epoch milliseconds when the entry was created.
        retry_count: Failed drain attempts so far.
    """

    id: str
    kind: OperationKind
    payload: dict[str, Any]
    enqueued_at: int
    retry_count: int = 0

    @classmethod
    def create(cls, kind: OperationKind, payload: dict[str, Any]) -> QueuedOperation:
        """Create a new entry with a fresh id and the current time."""
        return cls(
            id=str(uuid.uuid4()),
            kind=kind,
            payload=dict(payload),
            enqueued_at=int(time.time() * 1000),
        )

    @property
    def dedup_key(self) -> tuple[OperationKind, str]:
        return (self.kind, payload_key(self.payload))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted layout."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "payload": self.payload,
            "timestamp": self.enqueued_at,
            "retries": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueuedOperation:
        """Create from the persisted layout."""
        return cls(
            id=data["id"],
            kind=OperationKind(data["type"]),
            payload=dict(data.get("payload") or {}),
            enqueued_at=int(data.get("timestamp", 0)),
            retry_count=int(data.get("retries", 0)),
        )

    def __repr__(self) -> str:
        return (
            f"QueuedOperation({self.kind.name}, id={self.id[:8]}, "
            f"retries={self.retry_count})"
        )


@dataclass
class RetryAttempt:
    """One scheduled retry, alive only during a with_retry call."""

    attempt_index: int
    delay: float


@dataclass
class MutationResult:
    """Outcome of a user-initiated mutation.

    A queued mutation is reported as successful: it will be delivered later.
    """

    success: bool
    queued: bool = False
    operation_id: str | None = None
    message: str | None = None
    category: ErrorCategory | None = None
    data: Any = field(default=None, repr=False)


# Type aliases
DispatchFunc = Callable[[OperationKind, dict[str, Any]], Awaitable[Any]]
OperationCallback = Callable[[QueuedOperation], None]
DropCallback = Callable[[QueuedOperation, BaseException], None]
