"""
Unit Tests: Structured Logging

Tests:
    - JSON rendering of extra= fields
    - log_context scoping
    - setup_logging handler installation
"""

import io
import json
import logging

import pytest

from streamdb.core.errors import CorruptionError
from streamdb.observability.logging import (
    JsonFormatter,
    LogLevel,
    log_context,
    setup_logging,
)


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="streamdb.test", level=logging.INFO, pathname=__file__,
        lineno=1, msg=msg, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "streamdb.test"
        assert "@timestamp" in data

    def test_extra_fields(self):
        data = json.loads(JsonFormatter().format(make_record(key="1/a", end_index=7)))
        assert data["key"] == "1/a"
        assert data["end_index"] == 7

    def test_error_payload(self):
        error = CorruptionError.length_mismatch("1", 2, 3, 2)
        data = json.loads(JsonFormatter().format(make_record(error=error.to_dict())))
        assert data["error"]["kind"] == "CorruptionError"
        assert data["error"]["context"]["capacity"] == 2

    def test_context_fields(self):
        with log_context(command="dump", stream_id=4):
            data = json.loads(JsonFormatter().format(make_record()))
        assert data["command"] == "dump"
        assert data["stream_id"] == 4

        data = json.loads(JsonFormatter().format(make_record()))
        assert "command" not in data

    def test_nested_context(self):
        with log_context(a=1):
            with log_context(b=2):
                data = json.loads(JsonFormatter().format(make_record()))
            outer = json.loads(JsonFormatter().format(make_record()))
        assert data["a"] == 1 and data["b"] == 2
        assert "b" not in outer


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_output(self):
        stream = io.StringIO()
        setup_logging(LogLevel.INFO, json_output=True, stream=stream)
        logging.getLogger("streamdb.storage").info("opened", extra={"backend": "sqlite"})

        data = json.loads(stream.getvalue().strip())
        assert data["message"] == "opened"
        assert data["backend"] == "sqlite"

    def test_level_filter(self):
        stream = io.StringIO()
        setup_logging(LogLevel.WARNING, json_output=False, stream=stream)
        logging.getLogger("streamdb").info("quiet")
        logging.getLogger("streamdb").warning("loud")

        output = stream.getvalue()
        assert "quiet" not in output
        assert "loud" in output

    def test_level_from_name(self):
        assert LogLevel.from_name("debug") is LogLevel.DEBUG
