"""Listening sockets and their connection acceptance loop."""

import logging
import socket
import ssl
import threading
from typing import Optional

from staticsite.bootstrap.config import ServerConfig, split_host_port
from staticsite.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from staticsite.domain.http_types import Handler
from staticsite.transport.context import ConnectionContext
from staticsite.transport.worker import handle_client

ACCEPT_LOGGER = component_logger("transport.accept")

ACCEPT_POLL_SECONDS = 0.5


class Listener:
    """One bound address served by a thread per accepted connection.

    ``serve_forever`` blocks until ``close`` is called from another thread
    or the socket fails. Connection workers are daemon threads and are not
    waited for on close.
    """

    def __init__(
        self,
        name: str,
        addr: str,
        handler: Handler,
        config: ServerConfig,
        tls_context: Optional[ssl.SSLContext] = None,
        logger: Optional[CorrelationLoggerAdapter] = None,
    ) -> None:
        self.name = name
        self.addr = addr
        self._context = ConnectionContext(handler, config, tls_context, name)
        self._log = logger or ACCEPT_LOGGER
        self._socket: Optional[socket.socket] = None
        self._stopped = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """Return the bound (host, port); useful when binding port 0."""
        if self._socket is None:
            raise RuntimeError(f"listener {self.name} is not bound")
        host, port = self._socket.getsockname()[:2]
        return host, port

    def bind(self) -> None:
        host, port = split_host_port(self.addr)
        server_socket = socket.create_server((host, port))
        server_socket.settimeout(ACCEPT_POLL_SECONDS)
        self._socket = server_socket
        bound_host, bound_port = self.address
        self._log.info(
            "Listener bound",
            extra={
                "event": "server_listening",
                "listener": self.name,
                "host": bound_host,
                "port": bound_port,
                "tls": self._context.tls,
            },
        )

    def serve_forever(self) -> None:
        if self._socket is None:
            self.bind()
        server_socket = self._socket
        try:
            while not self._stopped.is_set():
                try:
                    client_socket, client_address = server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if self._stopped.is_set():
                        break
                    raise OSError(f"{self.name} accept failed: {error}") from error
                self._dispatch(client_socket, client_address)
        finally:
            server_socket.close()
            self._log.info(
                "Listener stopped",
                extra={"event": "server_stopped", "listener": self.name},
            )

    def close(self) -> None:
        """Stop accepting; the serving thread exits within one poll interval."""
        self._stopped.set()

    def _dispatch(
        self, client_socket: socket.socket, client_address: tuple[str, int]
    ) -> None:
        if self._log.logger.isEnabledFor(logging.DEBUG):
            self._log.debug(
                "Client connection accepted",
                extra={
                    "event": "client_accepted",
                    "listener": self.name,
                    "client": f"{client_address[0]}:{client_address[1]}",
                },
            )
        client_socket.settimeout(None)
        thread = threading.Thread(
            target=handle_client,
            args=(client_socket, client_address[:2], self._context),
            name=f"{self.name}-conn",
            daemon=True,
        )
        thread.start()
