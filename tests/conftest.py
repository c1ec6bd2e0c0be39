"""Pytest configuration and shared fixtures.

Organization:
    - Environment: settings defaults so tests run without infrastructure
    - Database Fixtures: in-memory SQLite engine, session factory, seed helpers
    - Broker Fixtures: in-memory ``MessageGateway`` fake

When adding new features:
    1. Add fixtures to the appropriate section below
    2. Make fixtures composable (fixtures can depend on other fixtures)
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from user_service.core.settings import clear_all_caches
from user_service.infra.logging import clear_log_context
from user_service.infra.messaging.gateway import CONNECTION_FAILURE, PublishResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("RABBIT_ENABLED", "false")


@pytest.fixture(autouse=True)
def _reset_settings_and_context():
    """Reload settings from the environment and drop log context around every test."""
    clear_all_caches()
    clear_log_context()
    yield
    clear_all_caches()
    clear_log_context()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite engine with the full schema.

    ``StaticPool`` keeps a single connection so every session sees the same
    in-memory database.
    """
    from user_service.core.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the service's own."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Plain session for arranging and asserting; rolled back afterwards."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def stage_events(session_factory: async_sessionmaker[AsyncSession]):
    """Commit outbox rows for the given topics and return their row ids.

    Example:
        ids = await stage_events("user.created", "user.role_changed")
    """
    from user_service.infra.events.outbox.repository import OutboxRepository

    repo = OutboxRepository()

    async def _stage(*topics: str, payload: dict[str, Any] | None = None) -> list[int]:
        ids: list[int] = []
        async with session_factory() as session, session.begin():
            for i, topic in enumerate(topics):
                event = await repo.insert_event(session, topic, payload or {"seq": i})
                ids.append(event.id)
        return ids

    return _stage


# ============================================================================
# Broker Fixtures
# ============================================================================


@dataclass
class PublishedMessage:
    topic: str
    body: dict[str, Any]
    raw: bytes
    message_id: str
    correlation_id: str


@dataclass
class FakeGateway:
    """In-memory ``MessageGateway`` recording accepted messages.

    Attributes:
        fail_topics: Topics whose publishes are rejected.
        fail_all: Reject every publish.
        raise_topics: Topics whose publish call raises instead of returning a result.
        unreachable: Report every publish as a connection failure.
    """

    fail_topics: set[str] = field(default_factory=set)
    fail_all: bool = False
    raise_topics: set[str] = field(default_factory=set)
    unreachable: bool = False
    reason: str = "broker_error"
    published: list[PublishedMessage] = field(default_factory=list)
    attempts: int = 0

    async def publish(
        self,
        topic: str,
        body: bytes,
        *,
        message_id: str,
        correlation_id: str,
    ) -> PublishResult:
        self.attempts += 1
        if topic in self.raise_topics:
            raise ConnectionResetError(f"broker dropped while publishing {topic}")
        if self.unreachable:
            return PublishResult.failure(CONNECTION_FAILURE, "Failed to connect to RabbitMQ: refused")
        if self.fail_all or topic in self.fail_topics:
            return PublishResult.failure(self.reason, f"{topic} rejected")

        self.published.append(
            PublishedMessage(
                topic=topic,
                body=json.loads(body),
                raw=body,
                message_id=message_id,
                correlation_id=correlation_id,
            )
        )
        return PublishResult.success()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
