"""Event envelope wrapping outbox payloads with delivery metadata.

Consumers receive every domain event as a JSON envelope:

    {
      "id": "7f6c...",
      "type": "user.role_changed",
      "version": 1,
      "occurredAt": "2025-01-01T12:00:00.000Z",
      "correlationId": "c0ffee...",
      "producer": "user-service",
      "payload": {"userId": "...", "role": "INSTRUCTOR", "changedBy": "..."}
    }

``id`` is stable across redeliveries of the same outbox row, which is what
consumers deduplicate on.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from user_service.core.settings import get_app_settings

ENVELOPE_VERSION = 1


class EventEnvelope(BaseModel):
    """Immutable wire representation of a domain event.

    Field names are snake_case in Python and camelCase on the wire.
    """

    content_type: ClassVar[str] = "application/json"

    id: str = Field(description="Event id; stable per outbox row")
    type: str = Field(description="Event type, equal to the routing key")
    version: int = Field(default=ENVELOPE_VERSION, description="Envelope schema version")
    occurred_at: datetime = Field(alias="occurredAt", description="When the change was staged (UTC)")
    correlation_id: str = Field(alias="correlationId", description="Correlation id")
    producer: str = Field(description="Name of the producing service")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event body")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )

    @field_serializer("occurred_at")
    def _serialize_occurred_at(self, value: datetime) -> str:
        return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible wire dict (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)

    def to_bytes(self) -> bytes:
        """Serialize to the UTF-8 JSON message body."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


def build_envelope(
    topic: str,
    payload: dict[str, Any],
    *,
    event_id: uuid.UUID | str | None = None,
    correlation_id: str | None = None,
    occurred_at: datetime | None = None,
    producer: str | None = None,
) -> EventEnvelope:
    """Wrap ``payload`` in an envelope for publishing under ``topic``.

    Missing ``event_id``/``correlation_id`` get fresh UUIDs, ``occurred_at``
    defaults to now and ``producer`` to the configured service name. Naive
    timestamps (SQLite returns them) are taken as UTC.
    """
    if occurred_at is None:
        occurred_at = datetime.now(UTC)
    elif occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=UTC)

    return EventEnvelope(
        id=str(event_id or uuid.uuid4()),
        type=topic,
        version=ENVELOPE_VERSION,
        occurred_at=occurred_at,
        correlation_id=correlation_id or str(uuid.uuid4()),
        producer=producer or get_app_settings().service_name,
        payload=payload,
    )


__all__ = ["ENVELOPE_VERSION", "EventEnvelope", "build_envelope"]
