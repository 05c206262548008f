"""Unit tests for structured logging."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from forecast_workflow.logging import JsonFormatter, configure_logging
from forecast_workflow.workflow.stages import Stage


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="forecast_workflow.session",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Stage changed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    payload = json.loads(JsonFormatter().format(_record(old="IDLE", new=Stage.DATA_READY)))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "forecast_workflow.session"
    assert payload["message"] == "Stage changed"
    assert payload["extra"]["old"] == "IDLE"
    assert payload["extra"]["new"] == 1
    assert "thread" in payload


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]


@pytest.fixture
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    package_level = logging.getLogger("forecast_workflow").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("forecast_workflow").setLevel(package_level)


def test_configure_logging_replaces_handlers(restore_root_logging) -> None:
    configure_logging("warning")
    configure_logging("info", "text")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO
    assert not isinstance(root.handlers[0].formatter, JsonFormatter)


def test_trace_events_enables_package_debug(restore_root_logging) -> None:
    configure_logging("WARNING", trace_events=True)

    assert logging.getLogger("forecast_workflow").level == logging.DEBUG
    assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)
