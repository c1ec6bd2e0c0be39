"""JSON Lines formatter."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord carries; anything else on a record came from
# ``extra=`` or the context filter and is emitted as a field.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message"}

_DEFAULT_KEYS = {"level": "levelname", "logger": "name", "message": "message"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object on one line.

    A failed publish from the outbox worker comes out as::

        {"level": "WARNING", "logger": "user_service.infra.events.outbox.processor",
         "message": "Outbox publish failed", "timestamp": "2025-01-01T00:00:00.123Z",
         "service": "user-service", "outbox_event_id": 42, "topic": "user.role_changed"}

    Args:
        fmt_keys: Output key to ``LogRecord`` attribute mapping.
        static: Fields added to every record, such as the service name.
        include_process_info: Add ``pid`` and ``process_name``.
    """

    def __init__(
        self,
        fmt_keys: dict[str, str] | None = None,
        static: dict[str, Any] | None = None,
        include_process_info: bool = False,
    ) -> None:
        super().__init__()
        self.fmt_keys = dict(fmt_keys or _DEFAULT_KEYS)
        if include_process_info:
            self.fmt_keys |= {"pid": "process", "process_name": "processName"}
        self.static = dict(static or {})

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict[str, Any] = {key: getattr(record, attr, None) for key, attr in self.fmt_keys.items()}
        data["timestamp"] = _utc_timestamp(record.created)

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_trace"] = self.formatStack(record.stack_info)

        data.update(self.static)
        data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in data
        )

        # json.dumps escapes embedded newlines, so tracebacks stay on one line
        return json.dumps(data, ensure_ascii=False, default=str)
