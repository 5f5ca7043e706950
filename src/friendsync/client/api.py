"""HTTP client for the friends API.

This module provides:
- FriendsClient: async HTTP client implementing every friend mutation
- Friend / FriendRequest / BlockedUser: server-side records
- APIError and its subclasses, one per HTTP failure class
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from friendsync.core.config import ServerConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Token missing, invalid or expired."""


class PermissionDeniedError(APIError):
    """Authenticated but not allowed to perform the action."""


class NotFoundError(APIError):
    """Resource not found."""


class RateLimitError(APIError):
    """Too many requests.

    Attributes:
        retry_after: Seconds the server asked us to wait, if it said so.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class ServerError(APIError):
    """Server-side failure (5xx)."""


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Friend:
    """Friend record from server."""

    id: str
    full_name: str
    avatar_url: str | None = None
    is_online: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Friend:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            full_name=data.get("full_name", ""),
            avatar_url=data.get("avatar_url"),
            is_online=bool(data.get("is_online", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dictionary shape kept in the query cache."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "is_online": self.is_online,
        }


@dataclass
class FriendRequest:
    """Friend request record from server."""

    id: str
    sender_id: str
    receiver_id: str
    status: str  # pending, accepted, rejected, cancelled
    created_at: datetime
    message: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FriendRequest:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            sender_id=data["sender_id"],
            receiver_id=data["receiver_id"],
            status=data.get("status", "pending"),
            created_at=datetime.fromisoformat(data["created_at"]),
            message=data.get("message"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dictionary shape kept in the query cache."""
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "message": self.message,
        }


@dataclass
class BlockedUser:
    """Blocked user record from server."""

    id: str
    blocked_id: str
    reason: str | None
    created_at: datetime | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockedUser:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            blocked_id=data["blocked_id"],
            reason=data.get("reason"),
            created_at=_parse_datetime(data.get("created_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the cache shape, keyed by the blocked user's id."""
        return {
            "id": self.blocked_id,
            "block_id": self.id,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FriendsClient:
    """Async HTTP client for the friends API.

    Implements the OperationExecutor protocol used by the dispatcher.
    """

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the friends client.

        Args:
            config: Server configuration with URL and token.
            transport: Optional transport override (used by tests).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    @property
    def config(self) -> ServerConfig:
        """Server configuration."""
        return self._config

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> FriendsClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()

    @staticmethod
    def _detail(response: httpx.Response, default: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return default
        if isinstance(body, dict):
            return str(body.get("detail", default))
        return default

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if status == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if status == 403:
            raise PermissionDeniedError(self._detail(response, "Forbidden"), 403)
        if status == 404:
            raise NotFoundError(self._detail(response, "Resource not found"), 404)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Rate limit exceeded",
                429,
                retry_after=float(retry_after) if retry_after else None,
            )
        if status >= 500:
            raise ServerError(self._detail(response, "Internal server error"), status)
        if status >= 400:
            raise APIError(self._detail(response, "Unknown error"), status)
        return response

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is reachable and healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Friend requests ===

    async def send_friend_request(
        self, receiver_id: str, message: str | None = None
    ) -> FriendRequest:
        """Send a friend request.

        Args:
            receiver_id: The user to send the request to.
            message: Optional message attached to the request.

        Returns:
            The created request.
        """
        body: dict[str, Any] = {"receiver_id": receiver_id}
        if message is not None:
            body["message"] = message
        response = await self._client.post("/api/friend-requests", json=body)
        self._handle_response(response)
        logger.debug("Sent friend request to %s", receiver_id)
        return FriendRequest.from_dict(response.json())

    async def accept_friend_request(self, request_id: str) -> None:
        """Accept a received friend request."""
        response = await self._client.post(f"/api/friend-requests/{request_id}/accept")
        self._handle_response(response)

    async def reject_friend_request(self, request_id: str) -> None:
        """Reject a received friend request."""
        response = await self._client.post(f"/api/friend-requests/{request_id}/reject")
        self._handle_response(response)

    async def cancel_friend_request(self, request_id: str) -> None:
        """Cancel a friend request we sent."""
        response = await self._client.delete(f"/api/friend-requests/{request_id}")
        self._handle_response(response)

    async def list_friend_requests(self, direction: str = "received") -> list[FriendRequest]:
        """List pending friend requests.

        Args:
            direction: "received" or "sent".
        """
        response = await self._client.get(
            "/api/friend-requests", params={"direction": direction}
        )
        self._handle_response(response)
        return [FriendRequest.from_dict(r) for r in response.json()]

    # === Friends ===

    async def list_friends(self) -> list[Friend]:
        """List the current user's friends."""
        response = await self._client.get("/api/friends")
        self._handle_response(response)
        return [Friend.from_dict(f) for f in response.json()]

    async def unfriend(self, friend_id: str) -> None:
        """Remove a friendship."""
        response = await self._client.delete(f"/api/friends/{friend_id}")
        self._handle_response(response)

    # === Blocking ===

    async def block_user(self, user_id: str, reason: str | None = None) -> dict[str, Any]:
        """Block a user.

        Blocking also removes friendships, follows and pending requests
        on the server side; the returned summary reports what was removed.
        """
        body: dict[str, Any] = {"user_id": user_id}
        if reason is not None:
            body["reason"] = reason
        response = await self._client.post("/api/blocks", json=body)
        self._handle_response(response)
        return dict(response.json())

    async def unblock_user(self, user_id: str) -> None:
        """Unblock a user."""
        response = await self._client.delete(f"/api/blocks/{user_id}")
        self._handle_response(response)

    async def list_blocked_users(self) -> list[BlockedUser]:
        """List users blocked by the current user."""
        response = await self._client.get("/api/blocks")
        self._handle_response(response)
        return [BlockedUser.from_dict(b) for b in response.json()]
