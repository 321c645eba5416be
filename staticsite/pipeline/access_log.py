"""Access logging in Combined Log Format."""

import dataclasses
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from http import HTTPStatus
from typing import Any, Callable, Optional

from staticsite.domain.correlation_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    component_logger,
    correlation_id_from_headers,
    generate_correlation_id,
    set_correlation_id,
)
from staticsite.domain.http_types import Handler, HttpRequest, HttpResponse, RequestContext
from staticsite.pipeline.middleware import Middleware

ACCESS_LOGGER = component_logger("access")

CLF_TIME_FORMAT = "%d/%b/%Y:%H:%M:%S %z"
SLOW_REQUEST_THRESHOLD = timedelta(milliseconds=200)


def _status_text(code: int) -> str:
    try:
        HTTPStatus(code)
    except ValueError:
        return "-"
    return str(code)


def _quoted(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


@dataclass(frozen=True)
class AccessLogEntry:
    """One access log record.

    The correlation ID occupies the RFC 1413 identity column, which is
    otherwise almost never populated.
    """

    client: str
    user_id: str
    ident: str
    started_at: datetime
    method: str
    path: str
    protocol: str
    status: int = 0
    size: int = 0
    user_agent: str = "-"
    referrer: str = "-"

    @classmethod
    def from_request(
        cls,
        request: HttpRequest,
        correlation_id: str,
        started_at: Optional[datetime] = None,
    ) -> "AccessLogEntry":
        return cls(
            client=request.client_address[0] or "-",
            user_id=request.basic_auth_user or "-",
            ident=correlation_id,
            started_at=started_at or datetime.now().astimezone(),
            method=request.method,
            path=request.path,
            protocol=request.version,
            user_agent=request.user_agent or "-",
            referrer=request.referrer or "-",
        )

    def complete(self, status: int, size: int) -> "AccessLogEntry":
        """Return a copy carrying the observed response status and size."""
        return dataclasses.replace(self, status=status, size=size)

    def render(self) -> str:
        request_line = f"{self.method} {self.path} {self.protocol}"
        return (
            f"{self.client} {self.ident} {self.user_id} "
            f"[{self.started_at.strftime(CLF_TIME_FORMAT)}] "
            f'"{_quoted(request_line)}" {_status_text(self.status)} {self.size} '
            f'"{_quoted(self.referrer)}" "{_quoted(self.user_agent)}"'
        )

    def __str__(self) -> str:
        return self.render()


def access_logger(
    logger: Optional[CorrelationLoggerAdapter] = None,
    slow_threshold: timedelta = SLOW_REQUEST_THRESHOLD,
    clock: Callable[[], float] = time.monotonic,
) -> Middleware:
    """Return a middleware that logs every request in Combined Log Format.

    It assigns the request's correlation ID, so it must be the outermost
    middleware for its timing to cover every inner processor.
    """
    log = logger or ACCESS_LOGGER
    threshold = slow_threshold.total_seconds()

    def middleware(next_handler: Handler) -> Handler:
        def handle(ctx: RequestContext, request: HttpRequest) -> HttpResponse:
            correlation_id = (
                correlation_id_from_headers(request.headers)
                or generate_correlation_id()
            )
            ctx.correlation_id = correlation_id
            set_correlation_id(correlation_id)
            entry = AccessLogEntry.from_request(request, correlation_id)
            ctx.started_at = entry.started_at
            start = clock()
            try:
                response = next_handler(ctx, request)
                elapsed = clock() - start
                response.headers.setdefault("X-Request-ID", correlation_id)

                completed = entry.complete(response.status, _bytes_written(request, response))
                log.info(completed.render(), extra=_log_fields(completed, elapsed))
                if elapsed > threshold:
                    log.warning(
                        f"slow request: {correlation_id} (took: {elapsed * 1000:.1f}ms)",
                        extra={
                            "event": "slow_request",
                            "route": request.path,
                            "duration_ms": round(elapsed * 1000, 3),
                        },
                    )
                return response
            finally:
                clear_correlation_id()

        return handle

    return middleware


def _bytes_written(request: HttpRequest, response: HttpResponse) -> int:
    # HEAD responses go out without their body.
    return 0 if request.method == "HEAD" else response.size


def _log_fields(entry: AccessLogEntry, elapsed: float) -> dict[str, Any]:
    return {
        "event": "request_complete",
        "client": entry.client,
        "method": entry.method,
        "route": entry.path,
        "status_code": entry.status,
        "bytes_out": entry.size,
        "duration_ms": round(elapsed * 1000, 3),
    }

