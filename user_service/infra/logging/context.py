"""Per-task logging context.

Values bound here are copied onto every record logged by the same asyncio
task (or thread). The outbox processor binds ``outbox_event_id`` and
``correlation_id`` around each delivery; transactors inherit a caller's
``correlation_id`` and store it on the outbox rows they stage.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Replaced, never mutated, so tasks that copied the context keep their view
_bound: ContextVar[dict[str, Any]] = ContextVar("user_service_log_context", default={})


def set_log_context(**values: Any) -> None:
    """Bind ``values`` for the rest of the current task."""
    _bound.set({**_bound.get(), **values})


def get_log_context() -> dict[str, Any]:
    """Return a copy of the values bound in the current task."""
    return dict(_bound.get())


def clear_log_context() -> None:
    _bound.set({})


def remove_from_log_context(*keys: str) -> None:
    _bound.set({k: v for k, v in _bound.get().items() if k not in keys})


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind ``values`` inside the block and restore the previous context on exit.

    Example:
        with log_context(outbox_event_id=row.id, correlation_id=cid):
            await gateway.publish(...)
    """
    token = _bound.set({**_bound.get(), **values})
    try:
        yield
    finally:
        _bound.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy the bound context onto each record.

    Installed on the queue handler by ``configure_logging``. Fields passed
    explicitly through ``extra`` win over bound values.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _bound.get().items():
            record.__dict__.setdefault(key, value)
        return True
