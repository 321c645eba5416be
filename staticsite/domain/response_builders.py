"""Pure HTTP response builders."""

import html
from http import HTTPStatus
from typing import Iterable, Optional

from staticsite.domain.http_types import HttpRequest, HttpResponse, should_close

PLAIN_TEXT = "text/plain; charset=utf-8"


def _close_preference(request: Optional[HttpRequest]) -> bool:
    return should_close(request.headers) if request is not None else True


def error_response(
    status: HTTPStatus,
    request: Optional[HttpRequest] = None,
    headers: Optional[dict[str, str]] = None,
    close_connection: Optional[bool] = None,
) -> HttpResponse:
    """Return a plain-text error whose body is the status phrase."""
    merged = {
        "Content-Type": PLAIN_TEXT,
        "X-Content-Type-Options": "nosniff",
        **(headers or {}),
    }
    return HttpResponse(
        int(status),
        merged,
        f"{status.phrase}\n".encode(),
        _close_preference(request) if close_connection is None else close_connection,
    )


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return error_response(HTTPStatus.NOT_FOUND, request)


def forbidden_response(request: Optional[HttpRequest] = None) -> HttpResponse:
    """Produce a 403 response honoring the caller's connection preference."""
    return error_response(HTTPStatus.FORBIDDEN, request)


def bad_request_response(request: Optional[HttpRequest] = None) -> HttpResponse:
    """Produce a 400 response; without a parsed request the connection closes."""
    return error_response(HTTPStatus.BAD_REQUEST, request)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return error_response(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, close_connection=True)


def header_too_large_response() -> HttpResponse:
    """Produce a 431 response that always closes the connection."""
    return error_response(
        HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE, close_connection=True
    )


def uri_too_long_response(request: HttpRequest) -> HttpResponse:
    return error_response(HTTPStatus.REQUEST_URI_TOO_LONG, request)


def internal_error_response(request: Optional[HttpRequest] = None) -> HttpResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, request)


def method_not_allowed_response(
    request: HttpRequest, allowed_methods: Iterable[str]
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    allow_header = ", ".join(sorted(allowed_methods))
    return error_response(
        HTTPStatus.METHOD_NOT_ALLOWED, request, headers={"Allow": allow_header}
    )


def redirect_response(location: str, request: HttpRequest) -> HttpResponse:
    """Produce a 301 permanent redirect to ``location``."""
    headers = {"Location": location}
    body = b""
    if request.method in {"GET", "HEAD"}:
        headers["Content-Type"] = "text/html; charset=utf-8"
        link = html.escape(location, quote=True)
        body = f'<a href="{link}">Moved Permanently</a>.\n'.encode()
    return HttpResponse(
        int(HTTPStatus.MOVED_PERMANENTLY), headers, body, should_close(request.headers)
    )


def options_response(
    request: HttpRequest, allowed_methods: Iterable[str]
) -> HttpResponse:
    """Produce a 204 response advertising the supported methods."""
    return HttpResponse(
        int(HTTPStatus.NO_CONTENT),
        {"Allow": ", ".join(sorted(allowed_methods))},
        b"",
        should_close(request.headers),
    )


def text_response(
    message: str, request: HttpRequest, headers: Optional[dict[str, str]] = None
) -> HttpResponse:
    """Return a 200 text/plain response."""
    base_headers = {"Content-Type": PLAIN_TEXT, **(headers or {})}
    return HttpResponse(
        int(HTTPStatus.OK), base_headers, message.encode(), should_close(request.headers)
    )
