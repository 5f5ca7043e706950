"""Error classification for friend mutations.

classify() turns a raw failure into a retry decision and a short message
that can be shown to the user. Rules are checked in a fixed order and the
first match wins, so a 429 carrying the word "network" is still a network
problem, and a breaker rejection is never mistaken for a server error.

Raw technical detail goes to the log through log_error(); only the
classified message is meant for display.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from friendsync.client.api import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServerError,
)
from friendsync.client.delivery.types import CircuitOpenError

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Classified kind of failure."""

    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    SERVER = "server"
    CIRCUIT_OPEN = "circuit_open"
    DATABASE = "database"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Result of classify()."""

    category: ErrorCategory
    retryable: bool
    user_message: str


MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "Connection issue. Please check your internet connection and try again.",
    ErrorCategory.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorCategory.AUTH: "Session expired. Please log in again.",
    ErrorCategory.PERMISSION: "You don't have permission to perform this action.",
    ErrorCategory.NOT_FOUND: "The requested resource was not found.",
    ErrorCategory.SERVER: "Service temporarily unavailable. Please try again in a moment.",
    ErrorCategory.CIRCUIT_OPEN: "Service is temporarily unavailable. Try again in {seconds}s.",
    ErrorCategory.DATABASE: "Unable to complete the request. Please try again.",
    ErrorCategory.TIMEOUT: "Request timed out. Please check your connection and try again.",
    ErrorCategory.UNKNOWN: "Something went wrong. Please try again.",
}

RETRYABLE: frozenset[ErrorCategory] = frozenset({
    ErrorCategory.NETWORK,
    ErrorCategory.RATE_LIMITED,
    ErrorCategory.SERVER,
    ErrorCategory.TIMEOUT,
})


def status_code_of(error: BaseException) -> int | None:
    """Extract an HTTP-like status code from an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def _contains(message: str, *needles: str) -> bool:
    return any(needle in message for needle in needles)


def _is_network(error: BaseException, status: int | None, message: str) -> bool:
    if isinstance(error, (httpx.NetworkError, ConnectionError)):
        return True
    return _contains(message, "network", "fetch failed", "connection refused", "connection reset")


def _is_rate_limited(error: BaseException, status: int | None, message: str) -> bool:
    return (
        isinstance(error, RateLimitError)
        or status == 429
        or _contains(message, "rate limit", "too many requests")
    )


def _is_auth(error: BaseException, status: int | None, message: str) -> bool:
    return (
        isinstance(error, AuthenticationError)
        or status == 401
        or _contains(message, "unauthorized", "not authenticated", "jwt expired")
    )


def _is_permission(error: BaseException, status: int | None, message: str) -> bool:
    return (
        isinstance(error, (PermissionDeniedError, PermissionError))
        or status == 403
        or _contains(message, "forbidden", "permission denied")
    )


def _is_not_found(error: BaseException, status: int | None, message: str) -> bool:
    return (
        isinstance(error, NotFoundError)
        or status == 404
        or _contains(message, "not found")
    )


def _is_server(error: BaseException, status: int | None, message: str) -> bool:
    return (
        isinstance(error, ServerError)
        or (status is not None and 500 <= status < 600)
        or _contains(message, "server error")
    )


def _is_circuit_open(error: BaseException, status: int | None, message: str) -> bool:
    return isinstance(error, CircuitOpenError) or _contains(message, "circuit breaker")


def _is_database(error: BaseException, status: int | None, message: str) -> bool:
    return _contains(message, "database", "postgres")


def _is_timeout(error: BaseException, status: int | None, message: str) -> bool:
    if isinstance(error, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
        return True
    return _contains(message, "timeout", "timed out")


_Rule = Callable[[BaseException, "int | None", str], bool]

# Order matters: first match wins
_RULES: list[tuple[ErrorCategory, _Rule]] = [
    (ErrorCategory.NETWORK, _is_network),
    (ErrorCategory.RATE_LIMITED, _is_rate_limited),
    (ErrorCategory.AUTH, _is_auth),
    (ErrorCategory.PERMISSION, _is_permission),
    (ErrorCategory.NOT_FOUND, _is_not_found),
    (ErrorCategory.SERVER, _is_server),
    (ErrorCategory.CIRCUIT_OPEN, _is_circuit_open),
    (ErrorCategory.DATABASE, _is_database),
    (ErrorCategory.TIMEOUT, _is_timeout),
]


def _remaining_cooldown(error: BaseException, message: str) -> int:
    if isinstance(error, CircuitOpenError):
        return math.ceil(error.remaining)
    # "... Try again in 42s." from a foreign breaker message
    marker = "try again in "
    index = message.find(marker)
    if index >= 0:
        digits = "".join(
            c for c in message[index + len(marker):].split("s", 1)[0] if c.isdigit()
        )
        if digits:
            return int(digits)
    return 0


def classify(error: BaseException) -> ErrorClassification:
    """Classify an error into a retry decision and a user-facing message.

    Args:
        error: The raised exception.

    Returns:
        ErrorClassification for the first matching rule, or UNKNOWN.
    """
    message = str(error).lower()
    status = status_code_of(error)

    for category, rule in _RULES:
        if rule(error, status, message):
            user_message = MESSAGES[category]
            if category is ErrorCategory.CIRCUIT_OPEN:
                user_message = user_message.format(
                    seconds=_remaining_cooldown(error, message)
                )
            return ErrorClassification(
                category=category,
                retryable=category in RETRYABLE,
                user_message=user_message,
            )

    return ErrorClassification(
        category=ErrorCategory.UNKNOWN,
        retryable=False,
        user_message=MESSAGES[ErrorCategory.UNKNOWN],
    )


def is_retryable(error: BaseException) -> bool:
    """Shortcut for classify(error).retryable."""
    return classify(error).retryable


def get_user_friendly_error_message(error: BaseException) -> str:
    """Shortcut for classify(error).user_message."""
    return classify(error).user_message


def log_error(context: str, error: BaseException, **extra: Any) -> None:
    """Log an error with its technical detail for debugging.

    Args:
        context: What was being attempted (e.g. "unfriend").
        error: The raised exception.
        **extra: Additional fields to include in the log line.
    """
    details = {
        "type": type(error).__name__,
        "message": str(error),
        "status": status_code_of(error),
        **extra,
    }
    logger.error("%s failed: %s", context, details, exc_info=error)
