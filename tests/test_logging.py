"""
Molkbook SDK - Logging Tests
"""

import json
import logging

import pytest

from molkbook.logging import JSONFormatter, StructuredLogger, get_logger, setup_logging


def make_record(msg="Test message", **extra):
    record = logging.LogRecord(
        name="molkbook.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def sdk_logger():
    """Restore the SDK logger after a test reconfigures it."""
    logger = logging.getLogger("molkbook")
    handlers, level = logger.handlers[:], logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_json_formatter(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["logger"] == "molkbook.test"
        assert "timestamp" in data

    def test_extras_are_fields(self):
        data = json.loads(JSONFormatter().format(make_record(session_id="gen_abc", kind="post")))

        assert data["session_id"] == "gen_abc"
        assert data["kind"] == "post"

    def test_sensitive_field_redaction(self):
        record = make_record(token="eyJ.secret", authorization="Bearer x", resource_id=4)
        data = json.loads(JSONFormatter(redact_sensitive=True).format(record))

        assert data["token"] == "[REDACTED]"
        assert data["authorization"] == "[REDACTED]"
        assert data["resource_id"] == 4

    def test_redaction_can_be_disabled(self):
        data = json.loads(JSONFormatter(redact_sensitive=False).format(make_record(token="t")))
        assert data["token"] == "t"

    def test_location(self):
        data = json.loads(JSONFormatter(include_location=True).format(make_record()))
        assert data["location"] == "test.py:10"


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_keyword_arguments_become_extras(self, caplog):
        caplog.set_level(logging.DEBUG, logger="molkbook")
        logger = get_logger("molkbook.test")

        logger.info("Stream completed", session_id="gen_1", resource_id=42)

        record = caplog.records[-1]
        assert record.getMessage() == "Stream completed"
        assert record.session_id == "gen_1"
        assert record.resource_id == 42

    def test_disabled_level_is_skipped(self, caplog):
        caplog.set_level(logging.WARNING, logger="molkbook")
        get_logger("molkbook.test").debug("quiet", detail=1)
        assert caplog.records == []

    def test_exception_includes_traceback(self, caplog):
        caplog.set_level(logging.DEBUG, logger="molkbook")
        logger = StructuredLogger(logging.getLogger("molkbook.test"))

        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("Handler raised", session_id="gen_2")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.exc_info[0] is ValueError


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_output(self, sdk_logger, capsys):
        setup_logging(level="DEBUG", json_output=True)
        get_logger("molkbook.test").info("Hello", kind="reply")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["message"] == "Hello"
        assert data["kind"] == "reply"

    def test_replaces_handlers(self, sdk_logger):
        setup_logging(level="INFO")
        setup_logging(level="WARNING", json_output=False)

        assert len(sdk_logger.handlers) == 1
        assert sdk_logger.level == logging.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
