"""Process-wide logging for the static site server.

Everything logs below the ``staticsite`` logger. Records are written either
as one JSON object per line or as plain text; in text mode access records
are printed as bare Combined Log Format lines so the output can be fed to
ordinary log analysers.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from staticsite.domain.correlation_id import CorrelationLoggerAdapter

LOGGER_NAME = "staticsite"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROTATE_AT_BYTES = 10 * 1024 * 1024
ROTATED_FILES = 5
REDACTED = "[REDACTED]"
ACCESS_EVENT = "request_complete"

_SECRET_PATTERNS = (
    re.compile(r"(?i)(authorization|token|signature|password|secret|api[_-]?key)"),
    re.compile(r"\b[A-Za-z0-9+/]{40,}={0,2}\b"),
)

# Record attributes promoted to top-level JSON keys, grouped by emitter.
_REQUEST_FIELDS = ("client", "method", "route", "status_code", "bytes_out", "duration_ms")
_LISTENER_FIELDS = ("listener", "host", "port", "addr", "tls", "limit")
_CERTIFICATE_FIELDS = ("self_sign", "cert_cache", "domain", "not_after")
_PROCESS_FIELDS = (
    "state",
    "signal",
    "directory",
    "log_destination",
    "log_level",
    "error_type",
    "error",
)
EXTRA_KEYS = _REQUEST_FIELDS + _LISTENER_FIELDS + _CERTIFICATE_FIELDS + _PROCESS_FIELDS

# Paths are logged as requested; masking them would hide which file was hit.
_VERBATIM_KEYS = frozenset({"route"})


def redact_sensitive(value: str) -> str:
    """Mask values that look like credentials or opaque key material."""
    if value and any(pattern.search(value) for pattern in _SECRET_PATTERNS):
        return REDACTED
    return value


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Give records logged outside a request a ``-`` correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


class JsonFormatter(logging.Formatter):
    """One sorted JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }
        if hasattr(record, "event"):
            payload["event"] = record.event

        for key in EXTRA_KEYS:
            if not hasattr(record, key):
                continue
            value = getattr(record, key)
            if isinstance(value, str) and key not in _VERBATIM_KEYS:
                value = redact_sensitive(value)
            payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines; access records pass through as bare CLF."""

    def __init__(self, datefmt: Optional[str] = DATE_FORMAT):
        super().__init__(TEXT_FORMAT, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "event", None) == ACCESS_EVENT:
            return record.getMessage()
        return super().format(record)


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _open_destination(destination: Optional[str]) -> logging.Handler:
    if not destination or destination.lower() == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=ROTATE_AT_BYTES, backupCount=ROTATED_FILES)


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    """Create the stdout or rotating-file handler with the chosen formatter."""
    handler = _open_destination(destination)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT) if use_json else TextFormatter())
    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Install a single handler on the project logger and return its adapter.

    Calling this again replaces the previous handler, closing it first.
    """
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for previous in list(logger.handlers):
        previous.close()
        logger.removeHandler(previous)
    logger.addHandler(_build_handler(destination, numeric_level, use_json))

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "log_destination": destination or "stdout",
            "log_level": logging.getLevelName(numeric_level),
        },
    )
    return adapter
