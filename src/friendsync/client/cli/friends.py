"""Friend commands for the friendsync CLI.

Commands:
- send-request: Send a friend request
- accept: Accept a received friend request
- reject: Reject a received friend request
- cancel: Cancel a friend request you sent
- unfriend: Remove a friend
- block: Block a user
- unblock: Unblock a user
- friends, requests, blocked: Show current data from the server

Each mutation goes through the same delivery path as the library: when the
server is unreachable the mutation is queued and delivered later by
'friendsync queue drain'. Earlier queued mutations are always sent first.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
import httpx

from friendsync.client.api import APIError
from friendsync.client.cache import (
    BLOCKED_LIST,
    FRIENDS_LIST,
    RECEIVED_REQUESTS,
    SENT_REQUESTS,
    CacheKey,
)
from friendsync.client.cli.runtime import Runtime, open_runtime
from friendsync.client.delivery.errors import get_user_friendly_error_message
from friendsync.client.delivery.types import MutationResult

ActionFunc = Callable[[Runtime], Awaitable[MutationResult]]


def run_action(action: ActionFunc) -> None:
    """Run one friend action and report its outcome.

    Exits with status 1 if the action failed.
    """

    async def _run() -> MutationResult:
        async with open_runtime() as runtime:
            return await action(runtime)

    result = asyncio.run(_run())
    if not result.success:
        click.echo(f"Error: {result.message}", err=True)
        sys.exit(1)
    if result.queued:
        note = f" {result.message}" if result.message else ""
        click.echo(f"Queued (id {result.operation_id}). Will be sent when back online.{note}")
        return
    click.echo("Done.")


@click.command(name="send-request")
@click.argument("receiver_id")
@click.option("--message", "-m", default=None, help="Optional message for the recipient.")
def send_request(receiver_id: str, message: str | None) -> None:
    """Send a friend request to RECEIVER_ID."""
    run_action(lambda runtime: runtime.actions.send_request(receiver_id, message=message))


@click.command()
@click.argument("request_id")
def accept(request_id: str) -> None:
    """Accept friend request REQUEST_ID."""
    run_action(lambda runtime: runtime.actions.accept_request(request_id))


@click.command()
@click.argument("request_id")
def reject(request_id: str) -> None:
    """Reject friend request REQUEST_ID."""
    run_action(lambda runtime: runtime.actions.reject_request(request_id))


@click.command()
@click.argument("request_id")
def cancel(request_id: str) -> None:
    """Cancel friend request REQUEST_ID that you sent."""
    run_action(lambda runtime: runtime.actions.cancel_request(request_id))


@click.command()
@click.argument("friend_id")
def unfriend(friend_id: str) -> None:
    """Remove FRIEND_ID from your friends."""
    run_action(lambda runtime: runtime.actions.unfriend(friend_id))


@click.command()
@click.argument("user_id")
@click.option("--reason", default=None, help="Optional reason, kept private.")
def block(user_id: str, reason: str | None) -> None:
    """Block USER_ID.

    Blocking also removes any friendship and pending requests.
    """
    run_action(lambda runtime: runtime.actions.block_user(user_id, reason=reason))


@click.command()
@click.argument("user_id")
def unblock(user_id: str) -> None:
    """Unblock USER_ID."""
    run_action(lambda runtime: runtime.actions.unblock_user(user_id))


def show_list(key: CacheKey, render: Callable[[dict[str, Any]], str], empty: str) -> None:
    """Fetch one cached list from the server and print it, one line per item."""

    async def _run() -> list[dict[str, Any]] | None:
        async with open_runtime() as runtime:
            return await runtime.context.cache.refresh(key)

    try:
        items = asyncio.run(_run())
    except (APIError, httpx.HTTPError) as e:
        click.echo(f"Error: {get_user_friendly_error_message(e)}", err=True)
        sys.exit(1)

    if not items:
        click.echo(empty)
        return
    for item in items:
        click.echo(render(item))


def _render_friend(friend: dict[str, Any]) -> str:
    status = " (online)" if friend["is_online"] else ""
    return f"{friend['id']}  {friend['full_name']}{status}"


def _render_request(request: dict[str, Any]) -> str:
    line = f"{request['id']}  {request['sender_id']} -> {request['receiver_id']} [{request['status']}]"
    if request["message"]:
        line += f"  \"{request['message']}\""
    return line


def _render_blocked(user: dict[str, Any]) -> str:
    if user["reason"]:
        return f"{user['id']}  ({user['reason']})"
    return user["id"]


@click.command(name="friends")
def list_friends() -> None:
    """Show your friends."""
    show_list(FRIENDS_LIST, _render_friend, "No friends yet.")


@click.command(name="requests")
@click.option("--sent", is_flag=True, help="Show requests you sent instead of received ones.")
def list_requests(sent: bool) -> None:
    """Show pending friend requests."""
    key = SENT_REQUESTS if sent else RECEIVED_REQUESTS
    show_list(key, _render_request, "No pending requests.")


@click.command(name="blocked")
def list_blocked() -> None:
    """Show users you blocked."""
    show_list(BLOCKED_LIST, _render_blocked, "No blocked users.")
