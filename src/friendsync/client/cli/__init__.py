"""Command-line interface for friendsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save the server URL and auth token
- queue: Inspect and manage the offline queue
- send-request: Send a friend request
- accept: Accept a received friend request
- reject: Reject a received friend request
- cancel: Cancel a friend request you sent
- unfriend: Remove a friend
- block: Block a user
- unblock: Unblock a user
- friends, requests, blocked: Show current data from the server
"""

from __future__ import annotations

import click

from friendsync.client.cli.config import (
    get_config_file,
    load_config,
    save_config,
    setup_logging,
)
from friendsync.client.cli.friends import (
    accept,
    block,
    cancel,
    list_blocked,
    list_friends,
    list_requests,
    reject,
    send_request,
    unblock,
    unfriend,
)
from friendsync.client.cli.queue import queue


@click.group()
@click.version_option(package_name="friendsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """friendsync - Friend actions that survive going offline."""
    setup_logging(verbose)


@cli.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., http://localhost:8000).",
)
@click.option(
    "--token",
    required=True,
    help="Auth token for the friends API.",
)
@click.option(
    "--monitor",
    type=click.Choice(["health", "flag"]),
    default=None,
    help="Network monitor: poll the health endpoint or assume online.",
)
def configure(server: str, token: str, monitor: str | None) -> None:
    """Save the server URL and auth token."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["auth_token"] = token
    if monitor is not None:
        delivery = config.setdefault("delivery", {})
        delivery.setdefault("queue", {})["network_monitor"] = monitor
    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")


# Queue commands
cli.add_command(queue)

# Friend commands
cli.add_command(send_request)
cli.add_command(accept)
cli.add_command(reject)
cli.add_command(cancel)
cli.add_command(unfriend)
cli.add_command(block)
cli.add_command(unblock)

# Read commands
cli.add_command(list_friends)
cli.add_command(list_requests)
cli.add_command(list_blocked)
