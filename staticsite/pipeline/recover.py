"""Containment of handler failures."""

import sys
import traceback
from typing import Optional, TextIO

from staticsite.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from staticsite.domain.http_types import Handler, HttpRequest, HttpResponse, RequestContext
from staticsite.domain.response_builders import internal_error_response
from staticsite.pipeline.middleware import Middleware

RECOVER_LOGGER = component_logger("pipeline.recover")


def recoverer(
    logger: Optional[CorrelationLoggerAdapter] = None,
    diagnostics: Optional[TextIO] = None,
) -> Middleware:
    """Return a middleware turning handler exceptions into a single 500 response.

    The exception is logged with request context and its stack trace is
    written to ``diagnostics`` (stderr by default). It is never re-raised.
    """
    log = logger or RECOVER_LOGGER

    def middleware(next_handler: Handler) -> Handler:
        def handle(ctx: RequestContext, request: HttpRequest) -> HttpResponse:
            try:
                return next_handler(ctx, request)
            except Exception as error:  # pylint: disable=broad-except
                log.error(
                    "Recovered from handler failure",
                    extra={
                        "event": "request_panic",
                        "error_type": type(error).__name__,
                        "error": str(error),
                        "method": request.method,
                        "route": request.path,
                        "client": request.client_address[0],
                    },
                )
                traceback.print_exc(file=diagnostics or sys.stderr)
                return internal_error_response(request)

        return handle

    return middleware

