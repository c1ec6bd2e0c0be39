"""Cached settings accessors.

Each accessor validates its settings class on first use and returns the
same frozen instance afterwards. Tests call ``clear_all_caches()`` after
changing the environment.
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .postgres import PostgresSettings
from .rabbit import RabbitSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> PostgresSettings:
    return PostgresSettings()


@lru_cache(maxsize=1)
def get_rabbit_settings() -> RabbitSettings:
    return RabbitSettings()


@lru_cache(maxsize=1)
def get_outbox_settings() -> OutboxSettings:
    return OutboxSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    return LoggingSettings()


_LOADERS = (
    get_app_settings,
    get_db_settings,
    get_rabbit_settings,
    get_outbox_settings,
    get_logging_settings,
)


def clear_all_caches() -> None:
    """Forget every cached settings instance so the next read sees the environment."""
    for loader in _LOADERS:
        loader.cache_clear()
