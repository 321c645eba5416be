"""Shared HTTP type definitions to avoid circular imports."""

import base64
import binascii
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime
from http import HTTPStatus
from typing import Callable, Iterable, Optional


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    target: str
    path: str
    headers: dict[str, str]
    body: bytes = b""
    query: str = ""
    version: str = "HTTP/1.1"
    client_address: tuple[str, int] = ("-", 0)
    tls: bool = False

    @property
    def host(self) -> str:
        """Return the Host header, falling back to an absolute-form target."""
        host = self.headers.get("host", "")
        if not host:
            host = urllib.parse.urlsplit(self.target).netloc
        return host

    @property
    def scheme(self) -> str:
        """Return the explicit scheme of an absolute-form target, if any."""
        return urllib.parse.urlsplit(self.target).scheme.lower()

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def referrer(self) -> str:
        return self.headers.get("referer", "")

    @property
    def basic_auth_user(self) -> Optional[str]:
        """Return the user name from a Basic Authorization header."""
        scheme, _, credentials = self.headers.get("authorization", "").partition(" ")
        if scheme.lower() != "basic" or not credentials:
            return None
        try:
            decoded = base64.b64decode(credentials.strip(), validate=True).decode()
        except (binascii.Error, UnicodeDecodeError):
            return None
        user, separator, _ = decoded.partition(":")
        if not separator:
            return None
        return user


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status: int
    headers: dict[str, str]
    body: bytes = b""
    close_connection: bool = False
    body_iter: Optional[Iterable[bytes]] = None
    content_length: Optional[int] = None

    @property
    def status_line(self) -> str:
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = ""
        return f"HTTP/1.1 {self.status} {phrase}".rstrip()

    @property
    def size(self) -> int:
        """Number of body bytes this response carries on the wire."""
        if self.body_iter is not None and self.content_length is not None:
            return self.content_length
        return len(self.body)


@dataclass
class RequestContext:
    """Per-request state threaded explicitly through the handler chain."""

    correlation_id: Optional[str] = None
    canonical_host: Optional[str] = None
    started_at: Optional[datetime] = field(default=None)


Handler = Callable[[RequestContext, HttpRequest], HttpResponse]


def should_close(headers: dict[str, str]) -> bool:
    """Determine whether the connection should be closed after responding."""
    return headers.get("connection", "").lower() == "close"
