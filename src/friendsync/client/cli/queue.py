"""Offline queue commands for the friendsync CLI.

Commands:
- queue status: Show queue size, connectivity and breaker state
- queue list: List pending operations in delivery order
- queue drain: Deliver pending operations now
- queue clear: Drop every pending operation
"""

from __future__ import annotations

import asyncio
import json
import sys
import time

import click

from friendsync.client.cli.runtime import open_runtime
from friendsync.client.delivery.retry import wait_for_network
from friendsync.client.delivery.types import QueuedOperation


@click.group()
def queue() -> None:
    """Inspect and manage the offline queue."""


@queue.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def status(as_json: bool) -> None:
    """Show queue size, connectivity and circuit breaker state."""

    async def _run() -> dict[str, object]:
        async with open_runtime(resume=False) as runtime:
            context = runtime.context
            return {
                "queued": context.queue.get_queued_count(),
                "online": await context.queue.is_online(),
                "state": (await context.queue.state()).value,
                "breaker": context.breaker.state.value,
            }

    info = asyncio.run(_run())
    if as_json:
        click.echo(json.dumps(info, indent=2))
        return
    click.echo(f"Queued operations: {info['queued']}")
    click.echo(f"Network: {'online' if info['online'] else 'offline'}")
    click.echo(f"State: {info['state']}")
    click.echo(f"Circuit breaker: {info['breaker']}")


@queue.command(name="list")
def list_cmd() -> None:
    """List pending operations in delivery order."""

    async def _run() -> list[QueuedOperation]:
        async with open_runtime(resume=False) as runtime:
            return runtime.context.queue.get_queue()

    operations = asyncio.run(_run())
    if not operations:
        click.echo("Queue is empty.")
        return

    now_ms = time.time() * 1000
    for index, op in enumerate(operations, 1):
        age = max(0, int((now_ms - op.enqueued_at) / 1000))
        payload = json.dumps(op.payload, sort_keys=True)
        click.echo(
            f"{index}. {op.kind.value} {payload} "
            f"(retries: {op.retry_count}, age: {age}s, id: {op.id})"
        )


@queue.command()
@click.option("--wait", is_flag=True, help="Wait for connectivity before draining.")
def drain(wait: bool) -> None:
    """Deliver pending operations now."""

    async def _run() -> tuple[int, int] | None:
        async with open_runtime(resume=False) as runtime:
            queue_ = runtime.context.queue
            before = queue_.get_queued_count()
            if wait:
                await wait_for_network(
                    runtime.context.monitor,
                    check_interval=runtime.context.config.queue.check_interval,
                    on_waiting=lambda: click.echo("Waiting for network..."),
                )
            elif not await queue_.is_online():
                return None
            await queue_.process_queue()
            return before, queue_.get_queued_count()

    counts = asyncio.run(_run())
    if counts is None:
        click.echo("Error: Server unreachable. Use --wait to wait for it.", err=True)
        sys.exit(1)
    before, after = counts
    click.echo(f"Delivered or dropped {before - after} of {before} operations.")
    if after:
        click.echo(f"{after} operations still pending (head failed, will retry later).")


@queue.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def clear(yes: bool) -> None:
    """Drop every pending operation."""
    if not yes and not click.confirm("Drop all pending operations?"):
        click.echo("Aborted.")
        return

    async def _run() -> int:
        async with open_runtime(resume=False) as runtime:
            return runtime.context.queue.clear_queue()

    count = asyncio.run(_run())
    click.echo(f"Cleared {count} operations.")
