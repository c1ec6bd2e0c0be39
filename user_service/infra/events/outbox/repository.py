"""Repository for OutboxEvent operations.

Provides methods for:
- Staging events inside a business transaction
- Claiming pending events for delivery (skip-locked)
- Delivery bookkeeping (processed, failures, dead-lettering)
- Operator maintenance (stats, requeue, cleanup)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, delete, func, select, update

from user_service.core.database.repository import BaseRepository
from user_service.core.exceptions import OutboxError
from user_service.infra.events.outbox.models import OutboxEvent
from user_service.infra.logging import get_log_context
from user_service.infra.metrics.prometheus import outbox_events_staged_total

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

MAX_ERROR_LENGTH = 1000


def build_claim_statement(batch_size: int) -> Select[tuple[OutboxEvent]]:
    """Select up to ``batch_size`` deliverable rows, oldest id first, skipping locked rows.

    Renders as ``... ORDER BY id LIMIT n FOR UPDATE SKIP LOCKED`` on
    PostgreSQL. SQLite has no row locks and drops the clause.
    """
    return (
        select(OutboxEvent)
        .where(
            OutboxEvent.processed.is_(False),
            OutboxEvent.dead_lettered_at.is_(None),
        )
        .order_by(OutboxEvent.id.asc())
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class OutboxRepository(BaseRepository[OutboxEvent]):
    """Repository for outbox event operations.

    Every method takes the caller's session and never commits; transaction
    boundaries belong to the transactor or the outbox processor.
    """

    def __init__(self) -> None:
        """Initialize repository with OutboxEvent model."""
        super().__init__(OutboxEvent)

    async def insert_event(
        self,
        session: AsyncSession,
        topic: str,
        payload: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> OutboxEvent:
        """Append an event to the outbox inside the caller's open transaction.

        The row becomes visible to the processor only when the caller
        commits. ``correlation_id`` falls back to the one in the current
        logging context.

        Raises:
            OutboxError: If the session has no active transaction.
        """
        if not session.in_transaction():
            raise OutboxError(
                "Outbox events must be staged inside an open transaction",
                extra={"topic": topic},
            )

        if correlation_id is None:
            correlation_id = get_log_context().get("correlation_id")

        event = OutboxEvent(
            topic=topic,
            payload=payload,
            correlation_id=correlation_id,
        )
        session.add(event)
        await session.flush()

        outbox_events_staged_total.labels(topic=topic).inc()
        self._logger.debug(
            "Event staged in outbox",
            extra={
                "outbox_event_id": event.id,
                "event_id": str(event.event_id),
                "topic": topic,
                "correlation_id": correlation_id,
            },
        )
        return event

    async def claim_pending(
        self,
        session: AsyncSession,
        *,
        batch_size: int,
    ) -> Sequence[OutboxEvent]:
        """Lock and return up to ``batch_size`` deliverable rows in ascending id order.

        Rows locked by a concurrent claimer are skipped, so two workers never
        receive the same row. Locks are held until the session's transaction ends.
        """
        result = await session.execute(build_claim_statement(batch_size))
        events = result.scalars().all()

        self._lazy.debug(lambda: f"outbox.claim: {[e.id for e in events]}")
        return events

    async def mark_processed(self, session: AsyncSession, outbox_id: int) -> bool:
        """Flip ``processed`` to true for an undelivered row.

        Returns:
            True if the row transitioned, False if it was already processed.
        """
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.processed.is_(False))
            .values(
                processed=True,
                processed_at=datetime.now(UTC),
                last_error=None,
            )
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def record_failure(
        self,
        session: AsyncSession,
        outbox_id: int,
        error: str,
        *,
        max_attempts: int = 0,
    ) -> bool:
        """Record a failed publish attempt; park the row when attempts reach ``max_attempts``.

        ``max_attempts`` of 0 disables dead-lettering (retry forever).

        Returns:
            True if the row was dead-lettered by this failure.
        """
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.processed.is_(False))
            .values(
                attempts=OutboxEvent.attempts + 1,
                last_error=error[:MAX_ERROR_LENGTH],
            )
            .returning(OutboxEvent.attempts)
        )
        attempts = (await session.execute(stmt)).scalar_one_or_none()
        if attempts is None or max_attempts <= 0 or attempts < max_attempts:
            return False

        await session.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id)
            .values(dead_lettered_at=datetime.now(UTC))
        )
        return True

    async def count_pending(self, session: AsyncSession) -> int:
        """Count rows still waiting for delivery (excluding dead-lettered)."""
        stmt = (
            select(func.count())
            .select_from(OutboxEvent)
            .where(
                OutboxEvent.processed.is_(False),
                OutboxEvent.dead_lettered_at.is_(None),
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def count_dead_lettered(self, session: AsyncSession) -> int:
        """Count rows parked by the dead-letter policy."""
        stmt = (
            select(func.count())
            .select_from(OutboxEvent)
            .where(
                OutboxEvent.processed.is_(False),
                OutboxEvent.dead_lettered_at.is_not(None),
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def oldest_pending_age(self, session: AsyncSession) -> float | None:
        """Age in seconds of the oldest pending row, or None if nothing is pending."""
        stmt = select(func.min(OutboxEvent.created_at)).where(
            OutboxEvent.processed.is_(False),
            OutboxEvent.dead_lettered_at.is_(None),
        )
        oldest = (await session.execute(stmt)).scalar_one_or_none()
        if oldest is None:
            return None
        return max(0.0, (datetime.now(UTC) - _as_utc(oldest)).total_seconds())

    async def requeue(self, session: AsyncSession, outbox_id: int) -> bool:
        """Make an undelivered (typically dead-lettered) row claimable again.

        Clears ``dead_lettered_at`` and resets ``attempts``. Processed rows
        are never touched.

        Returns:
            True if a row was requeued.
        """
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.processed.is_(False))
            .values(dead_lettered_at=None, attempts=0)
        )
        result = await session.execute(stmt)
        requeued = result.rowcount == 1
        if requeued:
            self._logger.info(
                "Outbox event requeued",
                extra={"outbox_event_id": outbox_id, "operation": "outbox.requeue"},
            )
        return requeued

    async def cleanup_processed(
        self,
        session: AsyncSession,
        *,
        older_than_days: int = 7,
    ) -> int:
        """Delete delivered rows processed more than ``older_than_days`` ago.

        Returns:
            Number of rows deleted
        """
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)

        stmt = (
            delete(OutboxEvent)
            .where(
                OutboxEvent.processed.is_(True),
                OutboxEvent.processed_at < cutoff,
            )
            .returning(OutboxEvent.id)
        )
        deleted_ids = (await session.execute(stmt)).scalars().all()
        return len(deleted_ids)


__all__ = ["MAX_ERROR_LENGTH", "OutboxRepository", "build_claim_statement"]
