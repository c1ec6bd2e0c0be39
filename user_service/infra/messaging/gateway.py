"""Broker publish gateway built on a FastStream ``RabbitBroker``.

The gateway is an explicit, injectable object with a connect / reconnect /
close lifecycle instead of a module-level connection, so the outbox
processor can run against RabbitMQ in production and against a fake in
tests:

    async with RabbitGateway() as gateway:
        result = await gateway.publish(
            "user.role_changed",
            envelope.to_bytes(),
            message_id=envelope.id,
            correlation_id=envelope.correlation_id,
        )
        if not result.ok:
            ...

``publish`` never raises for broker or network failures. It reports them as
``PublishResult(ok=False, ...)`` and marks the connection stale, so the next
call reconnects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, Self

from faststream.rabbit import RabbitBroker

from user_service.core.exceptions import BrokerConnectionError
from user_service.core.settings import get_rabbit_settings
from user_service.infra.logging import get_lazy_logger
from user_service.infra.messaging.exchanges import build_events_exchange
from user_service.infra.metrics.prometheus import broker_connection_status, broker_reconnects_total

if TYPE_CHECKING:
    from types import TracebackType

    from faststream.rabbit import RabbitExchange

    from user_service.core.settings.rabbit import RabbitSettings

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

# ``PublishResult.reason`` when no broker connection could be made
CONNECTION_FAILURE = "connection"


class ConnectionState(str, Enum):
    """Connection states of the publish gateway."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of a single publish call.

    Attributes:
        ok: True when the broker accepted the message.
        error: Failure description when ``ok`` is False.
        reason: Short failure class for metrics ("timeout", "connection", "broker_error").
    """

    ok: bool
    error: str | None = None
    reason: str | None = None

    @classmethod
    def success(cls) -> PublishResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str, error: str) -> PublishResult:
        return cls(ok=False, error=error, reason=reason)


class MessageGateway(Protocol):
    """What the outbox processor needs from a broker client."""

    async def publish(
        self,
        topic: str,
        body: bytes,
        *,
        message_id: str,
        correlation_id: str,
    ) -> PublishResult: ...


class RabbitGateway:
    """Publishes message bodies to the domain events exchange.

    Args:
        settings: RabbitMQ settings; defaults to ``get_rabbit_settings()``.
        broker_factory: Builds the ``RabbitBroker``; overridable for tests.
    """

    def __init__(
        self,
        settings: RabbitSettings | None = None,
        *,
        broker_factory: Callable[[RabbitSettings], RabbitBroker] | None = None,
    ) -> None:
        self._settings = settings or get_rabbit_settings()
        self._broker_factory = broker_factory or _default_broker_factory
        self._broker: RabbitBroker | None = None
        self._exchange: RabbitExchange = build_events_exchange(self._settings)
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether the gateway holds a usable broker connection."""
        return self._state == ConnectionState.CONNECTED and self._broker is not None

    async def connect(self) -> None:
        """Connect to RabbitMQ and declare the events exchange.

        No-op when already connected.

        Raises:
            BrokerConnectionError: If the broker is unreachable within
                ``connection_timeout`` or the exchange cannot be declared.
        """
        async with self._lock:
            if self.is_connected:
                return
            await self._connect_locked()

    async def reconnect(self) -> None:
        """Drop the current connection (if any) and connect again.

        Raises:
            BrokerConnectionError: If the new connection cannot be established.
        """
        async with self._lock:
            await self._discard_broker()
            broker_reconnects_total.inc()
            logger.info(
                "Reconnecting to RabbitMQ",
                extra={"host": self._settings.host, "port": self._settings.port},
            )
            await self._connect_locked()

    async def close(self) -> None:
        """Close the broker connection. Safe to call more than once."""
        async with self._lock:
            if self._broker is None:
                return
            logger.info("Closing RabbitMQ publish gateway")
            await self._discard_broker()

    async def publish(
        self,
        topic: str,
        body: bytes,
        *,
        message_id: str,
        correlation_id: str,
    ) -> PublishResult:
        """Publish ``body`` to the events exchange with routing key ``topic``.

        Messages are persistent (delivery mode 2) and ``application/json``.
        The call is bounded by ``publish_timeout``.
        """
        if not self.is_connected:
            try:
                if self._state == ConnectionState.STALE:
                    await self.reconnect()
                else:
                    await self.connect()
            except BrokerConnectionError as e:
                return PublishResult.failure(CONNECTION_FAILURE, str(e))

        broker = self._broker
        if broker is None:
            return PublishResult.failure(CONNECTION_FAILURE, "Broker connection was closed")

        try:
            await asyncio.wait_for(
                broker.publish(
                    body,
                    exchange=self._exchange,
                    routing_key=topic,
                    persist=True,
                    content_type="application/json",
                    message_id=message_id,
                    correlation_id=correlation_id,
                ),
                timeout=self._settings.publish_timeout,
            )
        except TimeoutError:
            self._mark_stale()
            return PublishResult.failure(
                "timeout",
                f"Publish timed out after {self._settings.publish_timeout}s",
            )
        except Exception as e:
            self._mark_stale()
            return PublishResult.failure("broker_error", f"{type(e).__name__}: {e}")

        lazy_logger.debug(
            lambda: f"Published {topic} message_id={message_id} ({len(body)} bytes)"
        )
        return PublishResult.success()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _connect_locked(self) -> None:
        self._state = ConnectionState.CONNECTING
        timeout = self._settings.connection_timeout
        broker: RabbitBroker | None = None

        try:
            broker = self._broker_factory(self._settings)
            await asyncio.wait_for(broker.connect(), timeout=timeout)
            await asyncio.wait_for(broker.declare_exchange(self._exchange), timeout=timeout)
        except TimeoutError:
            if broker is not None:
                await self._close_quietly(broker)
            self._state = ConnectionState.DISCONNECTED
            broker_connection_status.set(0)
            error_msg = f"RabbitMQ connection timeout after {timeout}s"
            logger.error(
                error_msg,
                extra={"host": self._settings.host, "connection_timeout": timeout},
            )
            raise BrokerConnectionError(error_msg, extra={"host": self._settings.host}) from None
        except Exception as e:
            if broker is not None:
                await self._close_quietly(broker)
            self._state = ConnectionState.DISCONNECTED
            broker_connection_status.set(0)
            logger.error(
                "Failed to connect to RabbitMQ",
                extra={"host": self._settings.host, "error": str(e)},
            )
            raise BrokerConnectionError(
                f"Failed to connect to RabbitMQ: {e}", extra={"host": self._settings.host}
            ) from e

        self._broker = broker
        self._state = ConnectionState.CONNECTED
        broker_connection_status.set(1)
        logger.info(
            "RabbitMQ publish gateway connected",
            extra={
                "host": self._settings.host,
                "exchange": self._settings.exchange_name,
                "exchange_type": self._settings.exchange_type,
            },
        )

    def _mark_stale(self) -> None:
        self._state = ConnectionState.STALE
        broker_connection_status.set(0)

    async def _discard_broker(self) -> None:
        broker, self._broker = self._broker, None
        if broker is not None:
            await self._close_quietly(broker)
        self._state = ConnectionState.DISCONNECTED
        broker_connection_status.set(0)

    async def _close_quietly(self, broker: RabbitBroker) -> None:
        try:
            await asyncio.wait_for(broker.close(), timeout=self._settings.graceful_timeout)
        except Exception as e:
            logger.warning("Error closing RabbitMQ broker", extra={"error": str(e)})


def _default_broker_factory(settings: RabbitSettings) -> RabbitBroker:
    return RabbitBroker(
        settings.get_url(),
        graceful_timeout=settings.graceful_timeout,
        logger=logger,
    )


__all__ = [
    "CONNECTION_FAILURE",
    "ConnectionState",
    "MessageGateway",
    "PublishResult",
    "RabbitGateway",
]
