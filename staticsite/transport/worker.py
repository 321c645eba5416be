"""Worker thread logic for handling individual client connections."""

import logging
import socket
import ssl
from typing import Optional

from staticsite.bootstrap.config import MAX_BODY_BYTES
from staticsite.domain.correlation_id import clear_correlation_id, component_logger
from staticsite.domain.http_types import (
    HttpRequest,
    HttpResponse,
    RequestContext,
    should_close,
)
from staticsite.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    header_too_large_response,
    internal_error_response,
)
from staticsite.pipeline.io import receive_request, send_response
from staticsite.pipeline.validation import RequestEntityTooLarge, RequestHeaderTooLarge
from staticsite.transport.context import ConnectionContext

WORKER_LOGGER = component_logger("transport.worker")


def _client_label(client_address: tuple[str, int]) -> str:
    return f"{client_address[0]}:{client_address[1]}"


def _handshake(
    client_socket: socket.socket, context: ConnectionContext, client_label: str
) -> Optional[socket.socket]:
    """Complete the TLS handshake on the worker thread, not the accept loop."""
    if context.tls_context is None:
        return client_socket
    client_socket.settimeout(context.config.read_timeout)
    try:
        return context.tls_context.wrap_socket(client_socket, server_side=True)
    except (ssl.SSLError, OSError) as error:
        WORKER_LOGGER.info(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": client_label,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        client_socket.close()
        return None


def _read_request(
    client_socket: socket.socket,
    buffer: bytes,
    client_address: tuple[str, int],
    context: ConnectionContext,
    wait_idle: bool,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read one request, answering wire-level errors directly."""
    client_label = _client_label(client_address)
    error_response: Optional[HttpResponse] = None
    try:
        request, buffer = receive_request(
            client_socket,
            buffer,
            client_address,
            context.config,
            tls=context.tls,
            wait_idle=wait_idle,
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={
                "event": "body_size_exceeded",
                "client": client_label,
                "limit": MAX_BODY_BYTES,
            },
        )
        error_response = entity_too_large_response()
    except RequestHeaderTooLarge:
        WORKER_LOGGER.warning(
            "Request header block exceeded limit",
            extra={
                "event": "header_size_exceeded",
                "client": client_label,
                "limit": context.config.max_header_bytes,
            },
        )
        error_response = header_too_large_response()
    except (ValueError, UnicodeDecodeError):
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_label},
        )
        error_response = bad_request_response()

    if error_response is not None:
        send_response(
            client_socket, error_response, write_timeout=context.config.write_timeout
        )
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected",
                extra={"event": "client_disconnected", "client": client_label},
            )
        return None, b"", True
    return request, buffer, False


def _keep_alive(request: HttpRequest, response: HttpResponse) -> bool:
    if response.close_connection or should_close(request.headers):
        return False
    if request.version == "HTTP/1.0":
        return request.headers.get("connection", "").lower() == "keep-alive"
    return True


def _dispatch(request: HttpRequest, context: ConnectionContext) -> HttpResponse:
    """Run the handler chain; failures escaping it still produce a 500."""
    try:
        return context.handler(RequestContext(), request)
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unhandled error in handler chain",
            extra={
                "event": "handler_error",
                "error_type": type(error).__name__,
                "route": request.path,
            },
            exc_info=True,
        )
        return internal_error_response(request)


def _close(client_socket: socket.socket, client_label: str) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()
    WORKER_LOGGER.debug(
        "Socket closed", extra={"event": "socket_closed", "client": client_label}
    )


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: ConnectionContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    client_label = _client_label(client_address)
    connection = _handshake(client_socket, context, client_label)
    if connection is None:
        return

    buffer = b""
    wait_idle = False
    try:
        while True:
            request, buffer, should_terminate = _read_request(
                connection, buffer, client_address, context, wait_idle
            )
            if should_terminate or request is None:
                break

            response = _dispatch(request, context)
            keep_alive = _keep_alive(request, response)
            response.close_connection = not keep_alive
            send_response(
                connection,
                response,
                head_only=request.method == "HEAD",
                write_timeout=context.config.write_timeout,
            )
            if not keep_alive:
                break
            wait_idle = True
    except (ConnectionError, TimeoutError, OSError) as error:
        WORKER_LOGGER.info(
            "Connection ended",
            extra={
                "event": "connection_error",
                "client": client_label,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_label,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _close(connection, client_label)
        clear_correlation_id()
