"""Unit tests for the service lifespan."""

from __future__ import annotations

import pytest

from user_service.app import lifespan
from user_service.core.settings import clear_all_caches
from user_service.infra.messaging.gateway import PublishResult


class StubGateway:
    instances: list[StubGateway] = []

    def __init__(self, settings=None, **kwargs) -> None:
        self.closed = False
        StubGateway.instances.append(self)

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    async def publish(self, topic, body, *, message_id, correlation_id) -> PublishResult:
        return PublishResult.success()


@pytest.fixture
def sqlite_url(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    clear_all_caches()


@pytest.mark.unit
class TestLifespan:
    async def test_without_broker_starts_database_only(self, sqlite_url):
        async with lifespan(configure_logging=False) as state:
            assert state.session_factory is not None
            assert state.gateway is None
            assert state.processor is None
            assert state.outbox_running is False

        assert state.session_factory is None

    async def test_database_disabled(self, monkeypatch):
        monkeypatch.setenv("DB_ENABLED", "false")
        clear_all_caches()

        async with lifespan(configure_logging=False) as state:
            assert state.session_factory is None

    async def test_starts_and_stops_outbox_processor(self, sqlite_url, monkeypatch):
        from user_service.infra.database.session import create_tables

        monkeypatch.setattr("user_service.infra.messaging.gateway.RabbitGateway", StubGateway)
        monkeypatch.setattr(StubGateway, "instances", [])
        monkeypatch.setenv("RABBIT_ENABLED", "true")
        monkeypatch.setenv("OUTBOX_POLL_INTERVAL_MS", "50")
        clear_all_caches()
        await create_tables()

        async with lifespan(configure_logging=False) as state:
            assert state.outbox_running
            processor = state.processor

        assert processor.is_running is False
        (gateway,) = StubGateway.instances
        assert gateway.closed

    async def test_outbox_can_be_left_to_the_caller(self, sqlite_url, monkeypatch):
        monkeypatch.setattr("user_service.infra.messaging.gateway.RabbitGateway", StubGateway)
        monkeypatch.setenv("RABBIT_ENABLED", "true")
        clear_all_caches()

        async with lifespan(start_outbox=False, configure_logging=False) as state:
            assert state.gateway is not None
            assert state.processor is None
