"""Context object shared across worker threads."""

import ssl
from dataclasses import dataclass
from typing import Optional

from staticsite.bootstrap.config import ServerConfig
from staticsite.domain.http_types import Handler


@dataclass(frozen=True)
class ConnectionContext:
    """Dependencies every connection worker of one listener shares."""

    handler: Handler
    config: ServerConfig
    tls_context: Optional[ssl.SSLContext] = None
    listener_name: str = "https"

    @property
    def tls(self) -> bool:
        return self.tls_context is not None
