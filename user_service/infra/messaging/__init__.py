"""RabbitMQ messaging: publish gateway and exchange definitions."""

from __future__ import annotations

from .exchanges import build_events_exchange
from .gateway import ConnectionState, MessageGateway, PublishResult, RabbitGateway

__all__ = [
    "ConnectionState",
    "MessageGateway",
    "PublishResult",
    "RabbitGateway",
    "build_events_exchange",
]
