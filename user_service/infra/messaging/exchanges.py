"""FastStream exchange definitions for domain events.

Domain events go to a single durable exchange. The default topic type lets
consumers bind with patterns such as ``user.*`` or ``department.#``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from faststream.rabbit import ExchangeType, RabbitExchange

if TYPE_CHECKING:
    from user_service.core.settings.rabbit import RabbitSettings


def build_events_exchange(settings: RabbitSettings) -> RabbitExchange:
    """Return the durable exchange domain events are published to."""
    return RabbitExchange(
        name=settings.exchange_name,
        type=ExchangeType(settings.exchange_type),
        durable=True,
        auto_delete=False,
    )


__all__ = ["build_events_exchange"]
