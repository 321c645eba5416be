"""Unit tests for response builders."""

from staticsite.domain.http_types import HttpRequest, HttpResponse
from staticsite.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    header_too_large_response,
    method_not_allowed_response,
    redirect_response,
    uri_too_long_response,
)


def _request(method="GET", **headers) -> HttpRequest:
    return HttpRequest(method, "/", "/", headers)


def test_error_body_is_status_phrase():
    """Error bodies are the reason phrase in plain text."""
    response = uri_too_long_response(_request())

    assert response.status == 414
    assert response.body == b"URI Too Long\n"
    assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_error_honours_connection_close():
    """The client's Connection: close preference is kept."""
    assert uri_too_long_response(_request(connection="close")).close_connection
    assert not uri_too_long_response(_request()).close_connection


def test_wire_errors_always_close():
    """Errors raised before a request is parsed close the connection."""
    assert bad_request_response().close_connection
    assert entity_too_large_response().status == 413
    assert entity_too_large_response().close_connection
    assert header_too_large_response().status == 431
    assert header_too_large_response().close_connection


def test_method_not_allowed_sorts_allow_header():
    """Allow lists methods in a stable order."""
    response = method_not_allowed_response(_request("POST"), {"OPTIONS", "GET", "HEAD"})

    assert response.status == 405
    assert response.headers["Allow"] == "GET, HEAD, OPTIONS"


def test_redirect_has_location_and_link_body():
    """GET redirects include a short HTML body with an escaped link."""
    response = redirect_response("https://example.org/?a=1&b=2", _request())

    assert response.status == 301
    assert response.headers["Location"] == "https://example.org/?a=1&b=2"
    assert b'href="https://example.org/?a=1&amp;b=2"' in response.body


def test_redirect_for_other_methods_has_no_body():
    """Non-GET redirects are header-only."""
    assert redirect_response("https://example.org/", _request("OPTIONS")).body == b""


def test_status_line_and_unknown_codes():
    """Status lines use the standard phrase and tolerate unknown codes."""
    assert HttpResponse(404, {}).status_line == "HTTP/1.1 404 Not Found"
    assert HttpResponse(799, {}).status_line == "HTTP/1.1 799"
