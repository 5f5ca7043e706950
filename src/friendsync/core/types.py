"""Shared types for friendsync.

This module defines enums used across the client and the delivery pipeline.
"""

from __future__ import annotations

from enum import Enum


class OperationKind(str, Enum):
    """Kind of friend mutation that can be dispatched or queued.

    Values are the wire names used in the persisted queue.
    """

    SEND_REQUEST = "friend_request"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL_REQUEST = "cancel"
    UNFRIEND = "unfriend"
    BLOCK = "block"
    UNBLOCK = "unblock"


class DeliveryState(str, Enum):
    """Coarse state of the delivery pipeline, reported by the CLI."""

    IDLE = "idle"
    DRAINING = "draining"
    OFFLINE = "offline"
