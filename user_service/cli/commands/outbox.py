"""Outbox operations commands.

This module provides CLI commands for the transactional outbox:
- Run the publisher worker in the foreground
- Run a single publishing tick
- Inspect pending and dead-lettered events
- Requeue dead-lettered events
- Purge delivered events
"""

from __future__ import annotations

import asyncio
import signal
import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from user_service.cli.utils import coro, emit_json, error, header, info, key_value, success, warning
from user_service.core.settings import get_outbox_settings


@click.group(name="outbox")
def outbox() -> None:
    """Transactional outbox commands."""


@outbox.command()
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Rows claimed per tick")
@click.option(
    "--poll-interval-ms",
    type=click.IntRange(min=10),
    default=None,
    help="Milliseconds between idle ticks",
)
@click.option(
    "--metrics-port",
    type=click.IntRange(min=1, max=65535),
    default=None,
    help="Serve Prometheus metrics on this port",
)
@coro
async def run(batch_size: int | None, poll_interval_ms: int | None, metrics_port: int | None) -> None:
    """Run the outbox publisher until SIGINT/SIGTERM.

    The batch in flight when the signal arrives is finished and committed
    before the process exits.
    """
    from prometheus_client import start_http_server

    from user_service.app.lifespan import lifespan
    from user_service.infra.events.outbox.processor import OutboxProcessor
    from user_service.infra.metrics import REGISTRY

    if metrics_port is not None:
        start_http_server(metrics_port, registry=REGISTRY)
        info(f"Serving metrics on :{metrics_port}/metrics")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        async with lifespan(start_outbox=False) as state:
            if state.session_factory is None or state.gateway is None:
                error("Outbox publisher needs both the database and RabbitMQ enabled")
                sys.exit(1)

            processor = OutboxProcessor(
                state.session_factory,
                state.gateway,
                batch_size=batch_size,
                poll_interval=poll_interval_ms / 1000.0 if poll_interval_ms else None,
            )
            info(
                f"Outbox publisher running (batch size {processor.batch_size}, "
                f"poll interval {processor.poll_interval}s). Press Ctrl+C to stop."
            )
            await processor.run(stop_event)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    success("Outbox publisher stopped")


@outbox.command()
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Rows claimed")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def tick(batch_size: int | None, output_format: str) -> None:
    """Run a single publishing tick and print the report."""
    from user_service.app.lifespan import lifespan
    from user_service.infra.events.outbox.processor import OutboxProcessor

    async with lifespan(start_outbox=False, configure_logging=False) as state:
        if state.session_factory is None or state.gateway is None:
            error("Outbox publisher needs both the database and RabbitMQ enabled")
            sys.exit(1)

        processor = OutboxProcessor(state.session_factory, state.gateway, batch_size=batch_size)
        try:
            report = await processor.run_tick()
        except SQLAlchemyError as e:
            error(f"Outbox tick failed, nothing was committed: {e}")
            sys.exit(1)

    if output_format == "json":
        data = {
            "claimed": report.claimed,
            "published": report.published,
            "failed": report.failed,
            "dead_lettered": report.dead_lettered,
            "deferred": report.deferred,
            "duration": round(report.duration, 4),
            "outcomes": [
                {
                    "outbox_id": o.outbox_id,
                    "event_id": o.event_id,
                    "topic": o.topic,
                    "status": o.status.value,
                    "error": o.error,
                }
                for o in report.outcomes
            ],
        }
        emit_json(data)
        return

    header("Outbox Tick")
    key_value("Claimed", report.claimed)
    key_value("Published", report.published)
    key_value("Failed", report.failed)
    key_value("Dead-lettered", report.dead_lettered)
    key_value("Deferred", report.deferred)
    key_value("Duration", f"{report.duration:.3f}s")

    for outcome in report.outcomes:
        if not outcome.ok:
            warning(f"#{outcome.outbox_id} {outcome.topic}: {outcome.status.value} ({outcome.error})")


@outbox.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def stats(output_format: str) -> None:
    """Show pending and dead-lettered counts and the oldest pending age."""
    from user_service.infra.database.session import get_session_factory
    from user_service.infra.events.outbox.repository import OutboxRepository

    repo = OutboxRepository()
    try:
        async with get_session_factory()() as session:
            pending = await repo.count_pending(session)
            dead_lettered = await repo.count_dead_lettered(session)
            oldest = await repo.oldest_pending_age(session)
    except SQLAlchemyError as e:
        error(f"Failed to read outbox stats: {e}")
        sys.exit(1)

    if output_format == "json":
        emit_json(
            {
                "pending": pending,
                "dead_lettered": dead_lettered,
                "oldest_pending_age_seconds": oldest,
            }
        )
        return

    header("Outbox Stats")
    key_value("Pending", pending)
    key_value("Dead-lettered", dead_lettered)
    key_value("Oldest pending age", f"{oldest:.1f}s" if oldest is not None else "-")

    if dead_lettered:
        warning("Dead-lettered events need attention: user-service outbox requeue <id>")


@outbox.command()
@click.argument("outbox_id", type=int)
@coro
async def requeue(outbox_id: int) -> None:
    """Make an undelivered (dead-lettered) event claimable again."""
    from user_service.infra.database.session import get_session_factory
    from user_service.infra.events.outbox.repository import OutboxRepository

    repo = OutboxRepository()
    try:
        async with get_session_factory()() as session, session.begin():
            requeued = await repo.requeue(session, outbox_id)
    except SQLAlchemyError as e:
        error(f"Failed to requeue event {outbox_id}: {e}")
        sys.exit(1)

    if not requeued:
        error(f"No undelivered outbox event with id {outbox_id}")
        sys.exit(1)

    success(f"Outbox event {outbox_id} requeued")


@outbox.command()
@click.option(
    "--older-than-days",
    type=click.IntRange(min=1),
    default=None,
    help="Delete delivered events processed more than N days ago (default: OUTBOX_CLEANUP_AFTER_DAYS)",
)
@coro
async def cleanup(older_than_days: int | None) -> None:
    """Purge delivered outbox events."""
    from user_service.infra.database.session import get_session_factory
    from user_service.infra.events.outbox.repository import OutboxRepository

    days = older_than_days or get_outbox_settings().cleanup_after_days
    repo = OutboxRepository()
    try:
        async with get_session_factory()() as session, session.begin():
            deleted = await repo.cleanup_processed(session, older_than_days=days)
    except SQLAlchemyError as e:
        error(f"Failed to clean up outbox: {e}")
        sys.exit(1)

    success(f"Deleted {deleted} delivered events older than {days} days")
