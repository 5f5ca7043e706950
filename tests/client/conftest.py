"""Shared fixtures for client tests."""

from __future__ import annotations

import sqlite3
from typing import Any

import pytest

from friendsync.client.delivery.network import ConnectivityFlagMonitor
from friendsync.client.storage import MemoryKeyValueStore


class FakeExecutor:
    """In-memory executor recording every call.

    Set ``failures[method]`` to a list of exceptions; each call to that
    method pops and raises the first one until the list is empty.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.health = True

    async def _call(self, method: str, **kwargs: Any) -> Any:
        self.calls.append((method, kwargs))
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)
        return {"method": method, **kwargs}

    async def send_friend_request(self, receiver_id: str, message: str | None = None) -> Any:
        kwargs: dict[str, Any] = {"receiver_id": receiver_id}
        if message is not None:
            kwargs["message"] = message
        return await self._call("send_friend_request", **kwargs)

    async def accept_friend_request(self, request_id: str) -> Any:
        return await self._call("accept_friend_request", request_id=request_id)

    async def reject_friend_request(self, request_id: str) -> Any:
        return await self._call("reject_friend_request", request_id=request_id)

    async def cancel_friend_request(self, request_id: str) -> Any:
        return await self._call("cancel_friend_request", request_id=request_id)

    async def unfriend(self, friend_id: str) -> Any:
        return await self._call("unfriend", friend_id=friend_id)

    async def block_user(self, user_id: str, reason: str | None = None) -> Any:
        kwargs: dict[str, Any] = {"user_id": user_id}
        if reason is not None:
            kwargs["reason"] = reason
        return await self._call("block_user", **kwargs)

    async def unblock_user(self, user_id: str) -> Any:
        return await self._call("unblock_user", user_id=user_id)

    async def health_check(self) -> bool:
        return self.health

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]


class LockedStore(MemoryKeyValueStore):
    """In-memory store whose writes fail like a locked SQLite database."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.write_attempts = 0

    def set(self, key: str, value: str) -> None:
        self.write_attempts += 1
        raise sqlite3.OperationalError("database is locked")


class SleepRecorder:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def executor() -> FakeExecutor:
    """Create a fake remote executor."""
    return FakeExecutor()


@pytest.fixture
def sleeps() -> SleepRecorder:
    """Create a sleep function that does not wait."""
    return SleepRecorder()


@pytest.fixture
def store() -> MemoryKeyValueStore:
    """Create an empty in-memory store."""
    return MemoryKeyValueStore()


@pytest.fixture
def locked_store() -> LockedStore:
    """Create a store that rejects every write."""
    return LockedStore()


@pytest.fixture
def monitor() -> ConnectivityFlagMonitor:
    """Create a connectivity flag starting online."""
    return ConnectivityFlagMonitor(connected=True)
