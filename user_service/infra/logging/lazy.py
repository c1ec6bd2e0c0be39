"""Deferred log messages for per-row debug output.

Messages and format arguments may be zero-argument callables. They are
only called when the record will actually be emitted, so a debug line
listing every claimed outbox id costs nothing at INFO.
"""

from __future__ import annotations

import logging
from typing import Any


def _resolve(value: Any) -> Any:
    return value() if callable(value) else value


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter resolving callables on demand and merging bound extras.

    Example:
        lazy = get_lazy_logger(__name__, component="outbox")
        lazy.debug(lambda: f"claimed {[e.id for e in events]}")
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(_resolve(msg), kwargs)
        self.logger.log(level, msg, *(_resolve(a) for a in args), **kwargs)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        if self.extra:
            kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_lazy_logger(name: str, **extra: Any) -> LazyLoggerAdapter:
    """Wrap ``logging.getLogger(name)``; ``extra`` is attached to every record."""
    return LazyLoggerAdapter(logging.getLogger(name), extra)
