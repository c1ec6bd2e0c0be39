"""Unit tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock

import pytest

from user_service.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    get_lazy_logger,
    get_log_context,
    log_context,
    remove_from_log_context,
    set_log_context,
)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("test.logger", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJSONFormatter:
    def test_formats_one_json_line_with_extras(self):
        formatter = JSONFormatter(static={"service": "user-service"})

        line = formatter.format(_record(topic="user.created", outbox_event_id=7))
        data = json.loads(line)

        assert "\n" not in line
        assert data["level"] == "INFO"
        assert data["logger"] == "test.logger"
        assert data["message"] == "hello"
        assert data["service"] == "user-service"
        assert data["topic"] == "user.created"
        assert data["outbox_event_id"] == 7
        assert data["timestamp"].endswith("Z")

    def test_exception_is_kept_on_one_line(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys

            record = logging.LogRecord(
                "test.logger", logging.ERROR, __file__, 10, "failed", (), sys.exc_info()
            )

        line = formatter.format(record)

        assert "\n" not in line
        assert "RuntimeError: boom" in json.loads(line)["exception"]


@pytest.mark.unit
class TestLogContext:
    def test_filter_injects_context_without_overwriting(self):
        set_log_context(correlation_id="corr-1", outbox_event_id=3)
        record = _record(outbox_event_id=99)

        assert ContextInjectingFilter().filter(record) is True
        assert record.correlation_id == "corr-1"
        assert record.outbox_event_id == 99

    def test_remove_keys(self):
        set_log_context(correlation_id="c", outbox_event_id=1)
        remove_from_log_context("outbox_event_id")

        assert get_log_context() == {"correlation_id": "c"}

    def test_scoped_context_restores_previous_values(self):
        set_log_context(correlation_id="outer")

        with log_context(correlation_id="inner", outbox_event_id=5):
            assert get_log_context() == {"correlation_id": "inner", "outbox_event_id": 5}

        assert get_log_context() == {"correlation_id": "outer"}

    def test_scoped_context_restored_after_error(self):
        with pytest.raises(ValueError), log_context(outbox_event_id=1):
            raise ValueError("publish blew up")

        assert get_log_context() == {}


@pytest.mark.unit
class TestLazyLogger:
    def test_callable_not_evaluated_when_level_disabled(self):
        lazy = get_lazy_logger("test.lazy.disabled")
        lazy.logger.setLevel(logging.INFO)
        expensive = MagicMock(return_value="never")

        lazy.debug(expensive)

        expensive.assert_not_called()

    def test_callable_evaluated_when_enabled(self, caplog):
        lazy = get_lazy_logger("test.lazy.enabled", component="outbox")

        with caplog.at_level(logging.DEBUG, logger="test.lazy.enabled"):
            lazy.debug(lambda: "computed message")

        assert caplog.records[-1].getMessage() == "computed message"
        assert caplog.records[-1].component == "outbox"


@pytest.mark.unit
class TestFormatterOptions:
    def test_process_info_is_opt_in(self):
        plain = json.loads(JSONFormatter().format(_record()))
        with_process = json.loads(JSONFormatter(include_process_info=True).format(_record()))

        assert "pid" not in plain
        assert isinstance(with_process["pid"], int)
        assert with_process["process_name"]
