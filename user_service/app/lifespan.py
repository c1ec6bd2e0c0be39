"""Service lifespan management.

A single async context manager that starts the process's long-lived
resources in dependency order and stops them in reverse. Services start
only when configured.

Startup Order:
1. Core (logging, application info)
2. Database (PostgreSQL) - conditional on configuration
3. Messaging (RabbitMQ publish gateway) - conditional on configuration
4. Outbox Processor - requires database and messaging

Shutdown Order: Reverse of startup. The outbox processor finishes and
commits its in-flight batch before the gateway and engine are closed.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from user_service import __version__
from user_service.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)
from user_service.core.exceptions import BrokerConnectionError
from user_service.infra.logging.config import setup_logging

# Lazy imports to keep settings-only commands free of driver imports:
# - user_service.infra.database.session
# - user_service.infra.messaging.gateway
# - user_service.infra.events.outbox.processor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from user_service.infra.events.outbox.processor import OutboxProcessor
    from user_service.infra.messaging.gateway import RabbitGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceState:
    """Resources started by ``lifespan`` and handed to the caller."""

    session_factory: async_sessionmaker[AsyncSession] | None = None
    gateway: RabbitGateway | None = None
    processor: OutboxProcessor | None = None

    @property
    def outbox_running(self) -> bool:
        return self.processor is not None and self.processor.is_running


# =============================================================================
# Startup functions - organized by service
# =============================================================================


async def _startup_core(*, configure_logging: bool) -> None:
    """Configure logging and announce the process."""
    app = get_app_settings()

    if configure_logging:
        setup_logging(log_settings=get_logging_settings(), force=True)

    logger.info(
        "Service starting",
        extra={
            "service": app.service_name,
            "environment": app.environment,
            "version": __version__,
        },
    )


async def _startup_database(state: ServiceState) -> None:
    """Verify database connectivity and expose the session factory."""
    from user_service.infra.database.session import get_session_factory, init_database

    if not get_db_settings().is_configured:
        return

    await init_database()
    state.session_factory = get_session_factory()


async def _startup_messaging(state: ServiceState) -> None:
    """Connect the publish gateway (a failed connect is retried on first publish)."""
    from user_service.infra.messaging.gateway import RabbitGateway

    rabbit = get_rabbit_settings()
    if not rabbit.is_configured:
        return

    gateway = RabbitGateway(rabbit)
    try:
        await gateway.connect()
    except BrokerConnectionError as e:
        logger.warning(
            "RabbitMQ unavailable at startup, publishing will retry",
            extra={"error": e.detail, "host": rabbit.host},
        )
    state.gateway = gateway


async def _startup_outbox(state: ServiceState) -> None:
    """Start the outbox processor."""
    from user_service.infra.events.outbox.processor import OutboxProcessor

    outbox = get_outbox_settings()
    if not outbox.enabled or state.session_factory is None or state.gateway is None:
        return

    processor = OutboxProcessor(state.session_factory, state.gateway, settings=outbox)
    await processor.start()
    state.processor = processor


# =============================================================================
# Shutdown functions
# =============================================================================


async def _shutdown_outbox(state: ServiceState) -> None:
    """Stop the outbox processor after its in-flight batch."""
    if state.processor is None:
        return

    await state.processor.stop()
    state.processor = None


async def _shutdown_messaging(state: ServiceState) -> None:
    """Close the publish gateway."""
    if state.gateway is None:
        return

    await state.gateway.close()
    state.gateway = None
    logger.info("RabbitMQ publish gateway closed")


async def _shutdown_database(state: ServiceState) -> None:
    """Close database connection."""
    from user_service.infra.database.session import close_database

    if state.session_factory is None:
        return

    await close_database()
    state.session_factory = None
    logger.info("Database connection closed")


# =============================================================================
# Main lifespan context manager
# =============================================================================


@asynccontextmanager
async def lifespan(
    *,
    start_outbox: bool = True,
    configure_logging: bool = True,
) -> AsyncIterator[ServiceState]:
    """Manage the service lifecycle.

    Args:
        start_outbox: Start the background outbox processor.
        configure_logging: Apply ``LoggingSettings`` on startup.

    Yields:
        The started resources.
    """
    state = ServiceState()

    # 1. Core services (logging)
    await _startup_core(configure_logging=configure_logging)

    try:
        # 2. Database connection
        await _startup_database(state)

        # 3. Messaging (RabbitMQ)
        await _startup_messaging(state)

        # 4. Outbox processor (requires database and messaging)
        if start_outbox:
            await _startup_outbox(state)

        logger.info(
            "Service startup complete",
            extra={
                "service": get_app_settings().service_name,
                "database_enabled": state.session_factory is not None,
                "messaging_enabled": state.gateway is not None,
                "outbox_enabled": state.outbox_running,
            },
        )

        yield state
    finally:
        logger.info("Service shutting down", extra={"service": get_app_settings().service_name})

        # 4. Outbox processor
        await _shutdown_outbox(state)

        # 3. Messaging
        await _shutdown_messaging(state)

        # 2. Database
        await _shutdown_database(state)


__all__ = ["ServiceState", "lifespan"]
