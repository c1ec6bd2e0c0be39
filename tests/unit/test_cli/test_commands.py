"""CLI tests running the commands against a SQLite file database."""

from __future__ import annotations

import json
import re

import pytest
from click.testing import CliRunner

from user_service import __version__
from user_service.cli.main import cli
from user_service.core.settings import clear_all_caches
from user_service.infra.messaging.gateway import PublishResult

UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")
ACTOR = "00000000-0000-4000-8000-0000000000ad"


class StubGateway:
    """Stands in for ``RabbitGateway`` inside the service lifespan."""

    sent: list[str] = []

    def __init__(self, settings=None, **kwargs) -> None:
        self.settings = settings

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def publish(self, topic, body, *, message_id, correlation_id) -> PublishResult:
        StubGateway.sent.append(topic)
        return PublishResult.success()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path, monkeypatch, runner):
    """Point the CLI at a fresh SQLite database with the schema created."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    clear_all_caches()

    result = runner.invoke(cli, ["db", "create-tables"])
    assert result.exit_code == 0, result.output
    return tmp_path


def _create_user(runner, email: str = "ada@example.com", *extra: str) -> str:
    result = runner.invoke(cli, ["users", "create", "--email", email, "--name", "Ada", *extra])
    assert result.exit_code == 0, result.output
    assert f"User {email} created" in result.output
    return UUID_RE.search(result.output).group(0)


@pytest.mark.unit
def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


@pytest.mark.unit
def test_help_lists_command_groups(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for group in ("db", "outbox", "users"):
        assert group in result.output


@pytest.mark.unit
class TestUserCommands:
    def test_create_and_show(self, runner, cli_db):
        user_id = _create_user(runner)

        result = runner.invoke(cli, ["users", "show", user_id, "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["email"] == "ada@example.com"
        assert data["role"] == "EMPLOYEE"

    def test_set_role_is_case_insensitive(self, runner, cli_db):
        user_id = _create_user(runner)

        result = runner.invoke(cli, ["users", "set-role", user_id, "instructor", "--actor", ACTOR])

        assert result.exit_code == 0, result.output
        assert "now has role INSTRUCTOR" in result.output

    def test_rejects_unknown_role(self, runner, cli_db):
        user_id = _create_user(runner)

        result = runner.invoke(cli, ["users", "set-role", user_id, "OWNER", "--actor", ACTOR])

        assert result.exit_code == 2

    def test_duplicate_email_exits_non_zero(self, runner, cli_db):
        _create_user(runner)

        result = runner.invoke(cli, ["users", "create", "--email", "ada@example.com", "--name", "Ada"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_deactivate(self, runner, cli_db):
        user_id = _create_user(runner)

        result = runner.invoke(cli, ["users", "deactivate", user_id, "--actor", ACTOR])

        assert result.exit_code == 0, result.output
        assert "deactivated" in result.output

    def test_show_unknown_user(self, runner, cli_db):
        result = runner.invoke(cli, ["users", "show", "00000000-0000-4000-8000-000000000000"])

        assert result.exit_code == 1
        assert "User not found" in result.output


@pytest.mark.unit
class TestOutboxCommands:
    def test_stats_counts_staged_events(self, runner, cli_db):
        _create_user(runner)
        _create_user(runner, "grace@example.com")

        result = runner.invoke(cli, ["outbox", "stats", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["pending"] == 2
        assert data["dead_lettered"] == 0
        assert data["oldest_pending_age_seconds"] >= 0

    def test_tick_publishes_and_marks_processed(self, runner, cli_db, monkeypatch):
        monkeypatch.setattr("user_service.infra.messaging.gateway.RabbitGateway", StubGateway)
        monkeypatch.setattr(StubGateway, "sent", [])
        monkeypatch.setenv("RABBIT_ENABLED", "true")
        clear_all_caches()
        user_id = _create_user(runner)
        runner.invoke(cli, ["users", "set-role", user_id, "INSTRUCTOR", "--actor", ACTOR])

        result = runner.invoke(cli, ["outbox", "tick", "--format", "json"])

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["claimed"] == 2
        assert report["published"] == 2
        assert [o["topic"] for o in report["outcomes"]] == ["user.created", "user.role_changed"]
        assert StubGateway.sent == ["user.created", "user.role_changed"]

        stats = json.loads(runner.invoke(cli, ["outbox", "stats", "--format", "json"]).stdout)
        assert stats["pending"] == 0

    def test_tick_requires_broker(self, runner, cli_db):
        result = runner.invoke(cli, ["outbox", "tick"])

        assert result.exit_code == 1
        assert "RabbitMQ" in result.output

    def test_requeue_unknown_event(self, runner, cli_db):
        result = runner.invoke(cli, ["outbox", "requeue", "999"])

        assert result.exit_code == 1
        assert "No undelivered outbox event with id 999" in result.output

    def test_cleanup(self, runner, cli_db):
        result = runner.invoke(cli, ["outbox", "cleanup", "--older-than-days", "3"])

        assert result.exit_code == 0, result.output
        assert "Deleted 0 delivered events older than 3 days" in result.output


@pytest.mark.unit
def test_db_upgrade_applies_migrations(runner, tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}")
    clear_all_caches()

    result = runner.invoke(cli, ["db", "upgrade"])
    assert result.exit_code == 0, result.output

    user_id = _create_user(runner)
    assert UUID_RE.fullmatch(user_id)
