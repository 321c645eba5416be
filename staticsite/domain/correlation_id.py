"""Request correlation ID generation and logging context."""

import contextvars
import logging
import secrets
import uuid
from typing import Any, Callable, MutableMapping, Optional

LOGGER_PREFIX = "staticsite."
CORRELATION_HEADERS = ("x-request-id", "uuid")

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def new_v4_uuid(read: Callable[[int], bytes] = secrets.token_bytes) -> uuid.UUID:
    """Build an RFC 4122 version 4 UUID from 16 bytes supplied by ``read``.

    The version nibble is forced to ``0100`` and the variant bits to ``10``.
    """
    raw = read(16)
    if len(raw) != 16:
        raise ValueError(f"short read generating UUID: {len(raw)} bytes")
    return uuid.UUID(bytes=bytes(raw), version=4)


def generate_correlation_id() -> str:
    """Generate a new correlation ID in canonical hyphenated form."""
    return str(new_v4_uuid())


def correlation_id_from_headers(headers: dict[str, str]) -> Optional[str]:
    """Return a caller-supplied correlation ID, used verbatim when present."""
    for name in CORRELATION_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def get_correlation_id() -> Optional[str]:
    """Retrieve the current correlation ID from context."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Store a correlation ID in the current context."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Remove the correlation ID from the current context."""
    _correlation_id_var.set(None)


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation ID and component into log records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Add correlation_id and component to the extra dict."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        correlation_id = get_correlation_id()
        kwargs["extra"]["correlation_id"] = (
            correlation_id if correlation_id is not None else "-"
        )

        logger_name = self.logger.name
        if logger_name.startswith(LOGGER_PREFIX):
            component = logger_name[len(LOGGER_PREFIX) :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs


def component_logger(name: str) -> CorrelationLoggerAdapter:
    """Return the correlation-aware adapter for a ``staticsite`` component."""
    return CorrelationLoggerAdapter(logging.getLogger(f"{LOGGER_PREFIX}{name}"), {})


def child_logger(
    parent: CorrelationLoggerAdapter, name: str
) -> CorrelationLoggerAdapter:
    """Return the adapter for ``name`` below ``parent``'s logger."""
    return CorrelationLoggerAdapter(parent.logger.getChild(name), {})
