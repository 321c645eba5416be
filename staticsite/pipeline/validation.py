"""Request validation middleware for method and URI length."""

from typing import Optional

from staticsite.domain.http_types import Handler, HttpRequest, HttpResponse, RequestContext
from staticsite.domain.response_builders import (
    method_not_allowed_response,
    uri_too_long_response,
)
from staticsite.pipeline.middleware import Middleware

MAX_URI_LENGTH = 512
DEFAULT_ALLOWED_METHODS = ("GET", "HEAD", "OPTIONS")


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


class RequestHeaderTooLarge(Exception):
    """Raised when a request header block exceeds configured limits."""


def enforce_uri_length(
    request: HttpRequest, max_length: int = MAX_URI_LENGTH
) -> Optional[HttpResponse]:
    """Reject request targets of ``max_length`` characters or more."""
    if len(request.target) >= max_length:
        return uri_too_long_response(request)
    return None


def enforce_allowed_method(
    request: HttpRequest, allowed_methods: frozenset[str]
) -> Optional[HttpResponse]:
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method in allowed_methods:
        return None
    return method_not_allowed_response(request, allowed_methods)


def validate_request(
    request: HttpRequest, allowed_methods: frozenset[str]
) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    length_error = enforce_uri_length(request)
    if length_error is not None:
        return length_error
    return enforce_allowed_method(request, allowed_methods)


def accept_methods(*methods: str) -> Middleware:
    """Return a middleware admitting only ``methods`` (GET, HEAD, OPTIONS by default).

    Over-long request targets are answered with 414 whatever the method.
    """
    allowed = frozenset(m.upper() for m in (methods or DEFAULT_ALLOWED_METHODS))

    def middleware(next_handler: Handler) -> Handler:
        def handle(ctx: RequestContext, request: HttpRequest) -> HttpResponse:
            rejection = validate_request(request, allowed)
            if rejection is not None:
                return rejection
            return next_handler(ctx, request)

        return handle

    return middleware
