"""Tests for the structured logging helpers."""

from __future__ import annotations

import io
import json
import logging

import pytest

from sqlmarshal.command import Command
from sqlmarshal.database import Database
from sqlmarshal.utils.logging import (
    JSONFormatter,
    StructuredLogger,
    configure_logging,
    correlation_context,
    get_correlation_id,
)


def _make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="sqlmarshal.tests",
        level=logging.WARNING,
        pathname=__file__,
        lineno=7,
        msg="retrying",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras() -> None:
    payload = json.loads(JSONFormatter().format(_make_record(correlation_id="cid-1", extra_fields={"attempt": 2})))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "retrying"
    assert payload["correlation_id"] == "cid-1"
    assert payload["attempt"] == 2


def test_correlation_context_is_scoped() -> None:
    assert get_correlation_id() is None
    with correlation_context("abc") as cid:
        assert cid == "abc"
        assert get_correlation_id() == "abc"
    assert get_correlation_id() is None


def test_operation_logs_failure_and_reraises(caplog: pytest.LogCaptureFixture) -> None:
    logger = StructuredLogger("sqlmarshal.tests.operation")

    with caplog.at_level(logging.DEBUG, logger="sqlmarshal.tests.operation"):
        with pytest.raises(RuntimeError):
            with logger.operation("save", table="Orders"):
                raise RuntimeError("boom")

    failure = caplog.records[-1]
    assert failure.levelno == logging.ERROR
    assert failure.extra_fields["operation"] == "save"
    assert failure.extra_fields["table"] == "Orders"
    assert failure.extra_fields["error_type"] == "RuntimeError"
    assert failure.correlation_id


def test_configure_logging_writes_json() -> None:
    stream = io.StringIO()
    root = logging.getLogger()
    previous_level, previous_handlers = root.level, list(root.handlers)
    try:
        configure_logging("DEBUG", stream=stream)
        StructuredLogger("sqlmarshal.tests.configure").info("hello", rows=3)
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["message"] == "hello"
    assert payload["rows"] == 3


def test_pipeline_logs_commands_and_retries(fake_driver, deadlock, caplog: pytest.LogCaptureFixture) -> None:
    db = Database("mssql://db/app", fake_driver)
    db.connection.failures = [deadlock()]

    with caplog.at_level(logging.DEBUG, logger="sqlmarshal"):
        db.execute_non_query(Command.from_sql("DELETE FROM Orders WHERE Id = %(Id)s", {"Id": 9}))

    messages = [record.getMessage() for record in caplog.records]
    assert "Executing command" in messages
    assert "Transient database failure; retrying" in messages
    executing = next(record for record in caplog.records if record.getMessage() == "Executing command")
    assert executing.extra_fields["sql"] == "DELETE FROM Orders WHERE Id = %(Id)s"
    assert executing.extra_fields["parameters"] == ["Id"]
    assert "9" not in json.dumps(executing.extra_fields)
