"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (app/db/broker/outbox/logging), frozen, and
read through LRU-cached loaders:

    from user_service.core.settings import get_outbox_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables (production)
    3. .env file (development only)
"""

from __future__ import annotations

from .app import AppSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .postgres import PostgresSettings
from .rabbit import RabbitSettings

__all__ = [
    "AppSettings",
    "LoggingSettings",
    "OutboxSettings",
    "PostgresSettings",
    "RabbitSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_outbox_settings",
    "get_rabbit_settings",
]
