"""Transactional outbox: table model, repository and publishing processor."""

from __future__ import annotations

from .models import OutboxEvent
from .processor import DeliveryOutcome, DeliveryStatus, OutboxProcessor, TickReport
from .repository import OutboxRepository, build_claim_statement

__all__ = [
    "DeliveryOutcome",
    "DeliveryStatus",
    "OutboxEvent",
    "OutboxProcessor",
    "OutboxRepository",
    "TickReport",
    "build_claim_statement",
]
