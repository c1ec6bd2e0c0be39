"""Background outbox processor for reliable event publishing.

The processor runs as a recurring task that:
1. Claims a batch of pending outbox rows (FOR UPDATE SKIP LOCKED)
2. Wraps each row in an event envelope and publishes it through the gateway
3. Marks accepted rows processed and records failures on the rest
4. Commits once per batch

Delivery is at-least-once: a crash between the broker accepting a message
and the commit leaves the row pending, and the next tick publishes it again
with the same envelope id so consumers can deduplicate.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from user_service.core.events.envelope import build_envelope
from user_service.core.settings import get_outbox_settings
from user_service.infra.events.outbox.repository import OutboxRepository
from user_service.infra.logging import get_lazy_logger, log_context
from user_service.infra.messaging.gateway import CONNECTION_FAILURE
from user_service.infra.metrics.prometheus import (
    outbox_batch_size,
    outbox_dead_lettered_total,
    outbox_events_published_total,
    outbox_pending_events,
    outbox_publish_failures_total,
    outbox_tick_duration_seconds,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from user_service.core.settings.outbox import OutboxSettings
    from user_service.infra.events.outbox.models import OutboxEvent
    from user_service.infra.messaging.gateway import MessageGateway

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class DeliveryStatus(str, Enum):
    """Result of attempting to deliver one outbox row."""

    PUBLISHED = "published"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"
    # Not attempted: the broker was unreachable earlier in the same tick
    DEFERRED = "deferred"


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Per-row delivery result collected into a ``TickReport``."""

    outbox_id: int
    event_id: str
    topic: str
    status: DeliveryStatus
    error: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.PUBLISHED

    @property
    def connection_lost(self) -> bool:
        """The gateway could not reach the broker at all for this row."""
        return self.reason == CONNECTION_FAILURE


@dataclass(slots=True)
class TickReport:
    """Summary of one claim/publish/commit cycle."""

    batch_size: int
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    duration: float = 0.0

    @property
    def claimed(self) -> int:
        return len(self.outcomes)

    @property
    def published(self) -> int:
        return sum(1 for o in self.outcomes if o.status is DeliveryStatus.PUBLISHED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is DeliveryStatus.FAILED)

    @property
    def dead_lettered(self) -> int:
        return sum(1 for o in self.outcomes if o.status is DeliveryStatus.DEAD_LETTERED)

    @property
    def deferred(self) -> int:
        return sum(1 for o in self.outcomes if o.status is DeliveryStatus.DEFERRED)

    @property
    def batch_full(self) -> bool:
        """A full batch means more rows are probably waiting."""
        return self.claimed >= self.batch_size and not self.deferred


class OutboxProcessor:
    """Recurring publisher draining the outbox table into the broker.

    Args:
        session_factory: Factory for sessions on the outbox database.
        gateway: Broker client used for publishing.
        batch_size: Rows claimed per tick.
        poll_interval: Seconds between ticks while the outbox is drained.
        max_attempts: Failed attempts before a row is dead-lettered (0 = never).
        shutdown_timeout: Seconds ``stop()`` waits for the in-flight tick.

    Unset arguments come from ``OutboxSettings``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: MessageGateway,
        *,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
        shutdown_timeout: float | None = None,
        settings: OutboxSettings | None = None,
    ) -> None:
        settings = settings or get_outbox_settings()
        self.session_factory = session_factory
        self.gateway = gateway
        self.batch_size = batch_size if batch_size is not None else settings.batch_size
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_attempts
        self.shutdown_timeout = (
            shutdown_timeout if shutdown_timeout is not None else settings.shutdown_timeout
        )

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._repository = OutboxRepository()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the polling loop as a background task."""
        if self.is_running:
            logger.warning("Outbox processor already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event), name="outbox-processor")
        logger.info(
            "Outbox processor started",
            extra={
                "batch_size": self.batch_size,
                "poll_interval": self.poll_interval,
                "max_attempts": self.max_attempts,
            },
        )

    async def stop(self) -> None:
        """Stop the loop after the in-flight tick, cancelling after ``shutdown_timeout``."""
        if self._task is None or self._stop_event is None:
            return

        self._stop_event.set()
        task = self._task
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "Outbox processor shutdown timed out, cancelling",
                extra={"shutdown_timeout": self.shutdown_timeout},
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        finally:
            self._task = None
            self._stop_event = None

        logger.info("Outbox processor stopped")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until ``stop_event`` is set.

        The stop token is checked between ticks only, so a claimed batch is
        always finished and committed before the loop exits. A full batch
        triggers the next tick immediately; a failed tick backs off for two
        poll intervals.
        """
        while not stop_event.is_set():
            try:
                report = await self.run_tick()
            except Exception:
                logger.exception("Error in outbox processor loop")
                delay = self.poll_interval * 2
            else:
                delay = 0.0 if report.batch_full else self.poll_interval

            if delay <= 0:
                await asyncio.sleep(0)
                continue

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=delay)

    async def run_tick(self) -> TickReport:
        """Claim, publish and commit one batch.

        Raises:
            Exception: Database errors (claim, bookkeeping, commit) propagate;
                the transaction is rolled back and claimed rows stay pending.
        """
        started = time.perf_counter()
        report = TickReport(batch_size=self.batch_size)

        async with self.session_factory() as session:
            events = await self._repository.claim_pending(session, batch_size=self.batch_size)
            outbox_batch_size.observe(len(events))

            broker_down: str | None = None
            for event in events:
                if broker_down is not None:
                    report.outcomes.append(self._defer(event, broker_down))
                    continue
                outcome = await self._deliver(session, event)
                report.outcomes.append(outcome)
                if outcome.connection_lost:
                    broker_down = outcome.error

            if report.deferred:
                logger.warning(
                    "Broker unreachable, rest of the batch left pending",
                    extra={"deferred": report.deferred, "error": broker_down},
                )

            outbox_pending_events.set(await self._repository.count_pending(session))

            await session.commit()

        report.duration = time.perf_counter() - started
        outbox_tick_duration_seconds.observe(report.duration)

        for outcome in report.outcomes:
            if outcome.ok:
                outbox_events_published_total.labels(topic=outcome.topic).inc()

        if report.claimed:
            logger.info(
                "Outbox batch processed",
                extra={
                    "claimed": report.claimed,
                    "published": report.published,
                    "failed": report.failed,
                    "dead_lettered": report.dead_lettered,
                    "deferred": report.deferred,
                    "duration": round(report.duration, 4),
                },
            )
        else:
            lazy_logger.debug("Outbox empty")

        return report

    async def _deliver(self, session: AsyncSession, event: OutboxEvent) -> DeliveryOutcome:
        outbox_id = event.id
        event_id = str(event.event_id)
        topic = event.topic
        # A row without a stored correlation id reuses its event id so redeliveries match
        correlation_id = event.correlation_id or event_id

        with log_context(outbox_event_id=outbox_id, correlation_id=correlation_id):
            try:
                envelope = build_envelope(
                    topic,
                    event.payload,
                    event_id=event_id,
                    correlation_id=correlation_id,
                    occurred_at=event.created_at,
                )
            except ValidationError as e:
                return await self._fail(
                    session, outbox_id, event_id, topic, "invalid_payload", str(e)
                )

            try:
                result = await self.gateway.publish(
                    topic,
                    envelope.to_bytes(),
                    message_id=envelope.id,
                    correlation_id=envelope.correlation_id,
                )
            except Exception as e:
                return await self._fail(
                    session, outbox_id, event_id, topic, "broker_error", f"{type(e).__name__}: {e}"
                )
            if not result.ok:
                return await self._fail(
                    session,
                    outbox_id,
                    event_id,
                    topic,
                    result.reason or "unknown",
                    result.error or "publish failed",
                )

            await self._repository.mark_processed(session, outbox_id)
            lazy_logger.debug(lambda: f"Outbox event {outbox_id} published to {topic}")
            return DeliveryOutcome(outbox_id, event_id, topic, DeliveryStatus.PUBLISHED)

    def _defer(self, event: OutboxEvent, error: str | None) -> DeliveryOutcome:
        # Left pending without counting an attempt; the next tick retries it
        return DeliveryOutcome(
            event.id, str(event.event_id), event.topic, DeliveryStatus.DEFERRED, error
        )

    async def _fail(
        self,
        session: AsyncSession,
        outbox_id: int,
        event_id: str,
        topic: str,
        reason: str,
        error: str,
    ) -> DeliveryOutcome:
        outbox_publish_failures_total.labels(topic=topic, reason=reason).inc()
        dead_lettered = await self._repository.record_failure(
            session, outbox_id, error, max_attempts=self.max_attempts
        )

        if dead_lettered:
            outbox_dead_lettered_total.labels(topic=topic).inc()
            logger.error(
                "Outbox event dead-lettered after exhausting publish attempts",
                extra={
                    "topic": topic,
                    "event_id": event_id,
                    "max_attempts": self.max_attempts,
                    "error": error,
                },
            )
            return DeliveryOutcome(outbox_id, event_id, topic, DeliveryStatus.DEAD_LETTERED, error, reason)

        logger.warning(
            "Failed to publish outbox event, will retry",
            extra={"topic": topic, "event_id": event_id, "reason": reason, "error": error},
        )
        return DeliveryOutcome(outbox_id, event_id, topic, DeliveryStatus.FAILED, error, reason)


__all__ = [
    "DeliveryOutcome",
    "DeliveryStatus",
    "OutboxProcessor",
    "TickReport",
]
