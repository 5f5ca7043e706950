"""Startup wiring shared by CLI commands.

Builds the HTTP client, the durable store and the delivery context from the
saved configuration, and tears them down afterwards. Every command that
opens a runtime counts as an app resume: pending queue entries are drained
first when the server is reachable.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import click

from friendsync.client.api import FriendsClient
from friendsync.client.cache import (
    BLOCKED_LIST,
    FRIENDS_LIST,
    CacheKey,
    QueryCache,
)
from friendsync.client.cli.config import (
    get_delivery_config,
    get_server_config,
    get_state_db,
    load_config,
)
from friendsync.client.context import DeliveryContext, create_delivery_context
from friendsync.client.friends import FriendActions
from friendsync.client.storage import SQLiteKeyValueStore


@dataclass
class Runtime:
    """Everything a command needs."""

    client: FriendsClient
    context: DeliveryContext
    actions: FriendActions


def register_loaders(cache: QueryCache, client: FriendsClient) -> None:
    """Let the cache fetch authoritative friend data from the server."""

    async def friends(_key: CacheKey) -> list[dict[str, Any]]:
        return [friend.to_dict() for friend in await client.list_friends()]

    async def requests(key: CacheKey) -> list[dict[str, Any]]:
        # ("friend-requests", "received" | "sent")
        return [r.to_dict() for r in await client.list_friend_requests(key[1])]

    async def blocked(_key: CacheKey) -> list[dict[str, Any]]:
        return [user.to_dict() for user in await client.list_blocked_users()]

    cache.register_loader(FRIENDS_LIST, friends)
    cache.register_loader(("friend-requests",), requests)
    cache.register_loader(BLOCKED_LIST, blocked)


@asynccontextmanager
async def open_runtime(resume: bool = True) -> AsyncIterator[Runtime]:
    """Open a runtime from the saved configuration.

    Args:
        resume: Drain pending queue entries before yielding if online.
            Queue management commands pass False to see the queue as stored.

    Raises ClickException (exit status 1) if the CLI has not been configured.
    """
    config = load_config()
    server_config = get_server_config(config)
    if server_config is None:
        raise click.ClickException("Not configured. Run 'friendsync configure' first.")

    client = FriendsClient(server_config)
    store = SQLiteKeyValueStore(get_state_db())
    context = create_delivery_context(
        client,
        store,
        config=get_delivery_config(config),
    )
    register_loaders(context.cache, client)
    actions = FriendActions(context)
    try:
        if resume:
            await context.resume()
        yield Runtime(client=client, context=context, actions=actions)
    finally:
        await context.close()
        await client.close()
        store.close()
