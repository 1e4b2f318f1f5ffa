"""
Molkbook SDK - Structured Logging

JSON logging for the SDK with structured extras and redaction of
credentials.

Usage:
    from molkbook.logging import setup_logging, get_logger

    # Opt in at application startup
    setup_logging(level="DEBUG")

    logger = get_logger(__name__)
    logger.info("Stream opened", session_id="gen_abc", kind="post")

Output:
    {"timestamp": "2026-01-15T10:30:00+00:00", "level": "INFO",
     "logger": "molkbook.streaming.session", "message": "Stream opened",
     "session_id": "gen_abc", "kind": "post"}
"""

import os
import sys
import json
import logging
from typing import Any, Dict, Union
from datetime import datetime, timezone


ROOT_LOGGER_NAME = "molkbook"

# Attributes every LogRecord carries; anything else came in as an extra
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Output format:
    {
        "timestamp": "2026-01-15T10:30:00.123456+00:00",
        "level": "INFO",
        "logger": "module.name",
        "message": "Log message",
        ... additional fields
    }
    """

    # Fields to redact from logs
    SENSITIVE_FIELDS = {
        "password", "secret", "token", "authorization",
        "auth_header", "credential", "cookie",
    }

    def __init__(
        self,
        include_location: bool = False,  # filename:lineno
        redact_sensitive: bool = True,
    ):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_location:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if self.redact_sensitive and self._is_sensitive(key):
                value = "[REDACTED]"
            log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)

    def _is_sensitive(self, field_name: str) -> bool:
        """Check if field name indicates sensitive data."""
        field_lower = field_name.lower()
        return any(sensitive in field_lower for sensitive in self.SENSITIVE_FIELDS)


class StructuredLogger:
    """
    Logger wrapper that turns keyword arguments into structured extras.

        logger.info("Chunk received", size=12)
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, **kwargs):
        """Internal log method."""
        if not self._logger.isEnabledFor(level):
            return

        extra = kwargs.pop("extra", {})
        for key in list(kwargs):
            if key not in {"exc_info", "stack_info", "stacklevel"}:
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log error message."""
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log exception with traceback."""
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


# Module-level state
_logging_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """
    Attach a stdout handler to the ``molkbook`` logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON formatter (True) or standard formatter (False)
        include_location: Include filename:lineno in logs
        redact_sensitive: Redact fields like tokens and authorization headers
    """
    global _logging_configured

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    sdk_logger = logging.getLogger(ROOT_LOGGER_NAME)
    sdk_logger.setLevel(level)

    for handler in sdk_logger.handlers[:]:
        sdk_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if json_output:
        formatter = JSONFormatter(
            include_location=include_location,
            redact_sensitive=redact_sensitive,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)
    sdk_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    The first call configures output from ``MOLKBOOK_LOG_LEVEL`` and
    ``MOLKBOOK_LOG_FORMAT`` when set; otherwise the SDK stays silent
    and leaves handler setup to the application.
    """
    global _logging_configured

    if not _logging_configured:
        level = os.getenv("MOLKBOOK_LOG_LEVEL")
        if level:
            json_output = os.getenv("MOLKBOOK_LOG_FORMAT", "json").lower() == "json"
            setup_logging(level=level, json_output=json_output)
        else:
            sdk_logger = logging.getLogger(ROOT_LOGGER_NAME)
            if not sdk_logger.handlers:
                sdk_logger.addHandler(logging.NullHandler())
            _logging_configured = True

    return StructuredLogger(logging.getLogger(name))
