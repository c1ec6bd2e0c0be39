"""Outbox publisher settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OutboxSettings(BaseSettings):
    """Polling cadence, batch sizing and dead-letter policy for the outbox worker.

    Environment variables use OUTBOX_ prefix.
    Example: OUTBOX_POLL_INTERVAL_MS=2000, OUTBOX_BATCH_SIZE=50
    """

    enabled: bool = Field(
        default=True,
        description="Run the outbox publisher alongside the service.",
    )
    poll_interval_ms: int = Field(
        default=2000,
        ge=10,
        le=600_000,
        description="Milliseconds between polling ticks when the outbox is idle.",
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=10_000,
        description="Maximum rows claimed per tick.",
    )
    max_attempts: int = Field(
        default=0,
        ge=0,
        le=1_000_000,
        description=(
            "Failed publish attempts after which a row is dead-lettered. "
            "0 keeps retrying forever."
        ),
    )
    shutdown_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600.0,
        description="Seconds to wait for the in-flight batch on shutdown.",
    )
    cleanup_after_days: int = Field(
        default=7,
        ge=1,
        le=3650,
        description="Delivered rows older than this are eligible for cleanup.",
    )

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0
