"""Process-wide logging setup.

Records flow from every logger to a single ``QueueHandler`` on the root
logger; a ``QueueListener`` thread formats them and writes to stderr and
an optional rotating JSONL file, so slow I/O never blocks the event loop
that drives the outbox publisher.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from typing import TYPE_CHECKING, Any

from user_service.core.settings.logs import LIBRARY_LOGGERS
from user_service.infra.logging.context import ContextInjectingFilter
from user_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from user_service.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


class _State:
    listener: QueueListener | None = None
    handler: QueueHandler | None = None
    configured: bool = False
    atexit_registered: bool = False


def shutdown() -> None:
    """Detach the queue handler and drain the listener. Idempotent."""
    if _State.handler is not None:
        logging.getLogger().removeHandler(_State.handler)
        _State.handler = None
    if _State.listener is not None:
        _State.listener.stop()
        _State.listener = None


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **overrides: Any,
) -> None:
    """Configure logging once per process.

    Args:
        log_settings: Settings to apply; loaded from ``LOG_*`` when omitted.
        force: Reconfigure even if logging was already set up.
        **overrides: Keyword overrides for ``configure_logging``.
    """
    if _State.configured and not force:
        return

    from user_service.core.settings import get_app_settings, get_logging_settings

    settings = log_settings or get_logging_settings()
    kwargs = {
        "service_name": get_app_settings().service_name,
        **settings.to_logging_kwargs(),
        **overrides,
    }
    configure_logging(**kwargs)
    _State.configured = True


def configure_logging(
    log_level: str = "INFO",
    *,
    json_logs: bool = True,
    library_level: str = "WARNING",
    console_enabled: bool = True,
    console_level: str | None = None,
    file_path: str | Path | None = None,
    file_level: str | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    include_context: bool = True,
    include_process_info: bool = False,
    capture_warnings: bool = True,
    service_name: str = "user-service",
) -> None:
    """Install the queue-based handler chain.

    Args:
        log_level: Root level.
        json_logs: JSON Lines when true, a single text line otherwise.
        library_level: Level for the broker and database client loggers.
        console_enabled: Write to stderr.
        console_level: Stderr threshold; ``log_level`` when None.
        file_path: Rotating file target; no file output when None.
        file_level: File threshold; ``log_level`` when None.
        file_max_bytes: Rotation size.
        file_backup_count: Rotated files kept.
        include_context: Copy bound log context onto each record.
        include_process_info: Add process id and name to JSON records.
        capture_warnings: Route ``warnings.warn`` through logging.
        service_name: Static ``service`` field on JSON records.
    """
    shutdown()
    logging.captureWarnings(capture_warnings)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
            "loggers": {name: {"level": library_level.upper()} for name in LIBRARY_LOGGERS},
        }
    )

    def make_formatter() -> logging.Formatter:
        if not json_logs:
            return logging.Formatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT)
        return JSONFormatter(static={"service": service_name}, include_process_info=include_process_info)

    sinks: list[logging.Handler] = []
    if console_enabled:
        sinks.append(_with_level(logging.StreamHandler(), console_level or log_level, make_formatter()))
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(path, maxBytes=file_max_bytes, backupCount=file_backup_count, encoding="utf-8")
        sinks.append(_with_level(rotating, file_level or log_level, make_formatter()))

    queue: SimpleQueue[logging.LogRecord] = SimpleQueue()
    if sinks:
        _State.listener = QueueListener(queue, *sinks, respect_handler_level=True)
        _State.listener.start()
        if not _State.atexit_registered:
            atexit.register(shutdown)
            _State.atexit_registered = True

    # Logger-level filters miss propagated records; the handler sees them all
    _State.handler = QueueHandler(queue)
    if include_context:
        _State.handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(_State.handler)

    logger.debug("Logging configured", extra={"sinks": len(sinks), "json": json_logs})


def _with_level(handler: logging.Handler, level: str, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level.upper())
    handler.setFormatter(formatter)
    return handler
