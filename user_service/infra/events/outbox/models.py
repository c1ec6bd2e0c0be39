"""OutboxEvent SQLAlchemy model for the transactional outbox pattern.

Events are written to this table in the same transaction as the business
change they describe, so either both are committed or neither is. The
outbox processor later claims pending rows, publishes them to RabbitMQ and
flips ``processed`` once the broker has accepted the message.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Index, Integer, String, Text, false, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from user_service.core.database.base import Base, IntegerPKMixin, JSONType, utcnow


class OutboxEvent(Base, IntegerPKMixin):
    """Outbox row awaiting (or done with) broker delivery.

    Attributes:
        id: Auto-increment key; claim order within a batch
        event_id: Stable UUID reused as envelope id / AMQP message_id on every redelivery
        topic: Routing key and event type (e.g. "user.role_changed")
        payload: JSON document describing the change
        correlation_id: Correlation id captured when the event was staged
        processed: False until the broker accepted the message; never reset
        processed_at: When the successful delivery was committed
        attempts: Number of failed publish attempts
        last_error: Last publish failure message
        dead_lettered_at: Set when the row exhausted its publish attempts
        created_at: Insertion timestamp
    """

    __tablename__ = "outbox_events"

    event_id: Mapped[uuid.UUID] = mapped_column(
        default=uuid.uuid4,
        unique=True,
        nullable=False,
        comment="Stable event id used for consumer deduplication",
    )
    topic: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Routing key / event type",
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        comment="Event payload",
    )
    correlation_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Correlation id captured at staging time",
    )

    # Delivery state
    processed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        comment="True once the broker accepted the message",
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
        comment="When the successful delivery was committed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Number of failed publish attempts",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last publish failure message",
    )
    dead_lettered_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
        comment="When the row was parked after exhausting publish attempts",
    )

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        comment="Insertion timestamp",
    )

    __table_args__ = (
        # Claim query: undelivered rows in id order
        Index(
            "ix_outbox_events_pending",
            "id",
            postgresql_where=text("processed = false"),
            sqlite_where=text("processed = 0"),
        ),
        Index("ix_outbox_events_topic", "topic"),
    )

    @property
    def is_dead_lettered(self) -> bool:
        """Check if the row was parked by the dead-letter policy."""
        return self.dead_lettered_at is not None

    def __repr__(self) -> str:
        if self.processed:
            status = "processed"
        elif self.is_dead_lettered:
            status = "dead-lettered"
        else:
            status = f"pending (attempts={self.attempts})"
        return f"OutboxEvent(id={self.id}, topic={self.topic!r}, status={status})"


__all__ = ["OutboxEvent"]
