"""HTTP Input/Output operations."""

import logging
import socket
import time
import urllib.parse
from email.utils import formatdate
from typing import Optional, Tuple

from staticsite.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES, ServerConfig
from staticsite.domain.correlation_id import component_logger
from staticsite.domain.http_types import HttpRequest, HttpResponse
from staticsite.pipeline.validation import RequestEntityTooLarge, RequestHeaderTooLarge

IO_LOGGER = component_logger("io")

SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}


def _deadline(seconds: float) -> int:
    return time.monotonic_ns() + int(seconds * 1_000_000_000)


def _recv_with_deadline(client_socket: socket.socket, deadline_ns: int) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    timeout_seconds = remaining_ns / 1_000_000_000
    client_socket.settimeout(timeout_seconds)
    return client_socket.recv(4096)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            raise ValueError(f"Malformed header line: {line!r}")
        parsed[name.lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str, str, str]:
    """Parse method, raw target, decoded path, query and protocol version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method.isalpha() or not target:
        raise ValueError("Invalid request line")
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Unsupported protocol version: {version!r}")

    if target == "*":
        return method, target, target, "", version
    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path) or "/"
    return method, target, path, parsed_target.query, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise ValueError("Unsupported Transfer-Encoding")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    client_address: tuple[str, int],
    config: ServerConfig,
    tls: bool = False,
    wait_idle: bool = False,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available.

    With ``wait_idle`` the wait for the first byte is bounded by the idle
    timeout; the read timeout then bounds the rest of the request.
    """
    deadline_ns: Optional[int] = None
    if not (wait_idle and not buffer):
        deadline_ns = _deadline(config.read_timeout)

    while HEADER_DELIMITER not in buffer:
        if len(buffer) > config.max_header_bytes:
            raise RequestHeaderTooLarge
        if deadline_ns is None:
            client_socket.settimeout(config.idle_timeout)
            chunk = client_socket.recv(4096)
            deadline_ns = _deadline(config.read_timeout)
        else:
            chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    if len(header_block) > config.max_header_bytes:
        raise RequestHeaderTooLarge
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, target, path, query, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    content_length = determine_content_length(headers)
    while len(remainder) < content_length:
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        remainder += chunk

    body = remainder[:content_length]
    leftover = remainder[content_length:]
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request", extra={"method": method, "route": path}
        )
    request = HttpRequest(
        method=method,
        target=target,
        path=path,
        headers=headers,
        body=body,
        query=query,
        version=version,
        client_address=client_address,
        tls=tls,
    )
    return request, leftover


def send_response(
    client_socket: socket.socket,
    response: HttpResponse,
    head_only: bool = False,
    write_timeout: Optional[float] = None,
) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)
    headers.setdefault("Date", formatdate(usegmt=True))
    headers["Content-Length"] = str(response.size)
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER

    if write_timeout is not None:
        client_socket.settimeout(write_timeout)
    if head_only:
        client_socket.sendall(header_block)
    elif response.body_iter is not None:
        client_socket.sendall(header_block)
        for chunk in response.body_iter:
            if chunk:
                client_socket.sendall(chunk)
    else:
        client_socket.sendall(header_block + response.body)
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={"status_code": response.status, "bytes_out": response.size},
        )
