"""Static site HTTPS server entry point."""

import functools
import sys
from typing import Optional

from staticsite.bootstrap.config import ServerConfig, config_from_args, parse_cli_args
from staticsite.bootstrap.logging_setup import configure_logging
from staticsite.domain.correlation_id import CorrelationLoggerAdapter, child_logger
from staticsite.domain.http_types import Handler
from staticsite.handlers.static_handler import static_handler
from staticsite.lifecycle.coordinator import ListenerCoordinator, ListenerError
from staticsite.pipeline.access_log import access_logger
from staticsite.pipeline.middleware import apply
from staticsite.pipeline.recover import recoverer
from staticsite.pipeline.validation import accept_methods
from staticsite.security.headers import secure_headers
from staticsite.tls.certificates import provide_tls_config
from staticsite.tls.context import CertificateError
from staticsite.transport.listener import Listener


def build_handler(
    fsdir: str,
    allowed_hosts: tuple[str, ...],
    logger: Optional[CorrelationLoggerAdapter] = None,
) -> Handler:
    """Wrap the static responder in the request processing chain.

    Access logging is outermost so its timing covers everything else, and
    recovery sits inside the header processor so 500s still carry the
    security headers. Each processor logs below ``logger`` when one is given.
    """

    def child(name: str) -> Optional[CorrelationLoggerAdapter]:
        return child_logger(logger, name) if logger is not None else None

    chain = apply(
        access_logger(child("access")),
        secure_headers(
            allowed_hosts,
            fallback_host=allowed_hosts[0],
            logger=child("security.headers"),
        ),
        recoverer(child("pipeline.recover")),
        accept_methods(),
    )
    return chain(static_handler(fsdir, child("handlers.static")))


def build_coordinator(
    config: ServerConfig, logger: CorrelationLoggerAdapter
) -> ListenerCoordinator:
    """Assemble the coordinator with every component logging below ``logger``."""
    return ListenerCoordinator(
        config,
        build_handler(config.fsdir, config.allowed_hosts, logger),
        provider=functools.partial(
            provide_tls_config, logger=child_logger(logger, "tls")
        ),
        listener_factory=functools.partial(
            Listener, logger=child_logger(logger, "transport.accept")
        ),
        logger=child_logger(logger, "lifecycle"),
    )


def main(argv: Optional[list[str]] = None) -> None:
    """Provision TLS, start the listeners and block until shutdown."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    logger = configure_logging(
        args.log_level, args.log_destination, use_json=args.log_format == "json"
    )
    config = config_from_args(args)

    logger.info(
        "Starting static site server",
        extra={
            "event": "server_starting",
            "addr": config.addr,
            "directory": config.fsdir,
            "self_sign": config.self_sign,
            "cert_cache": config.cert_cache,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
        },
    )

    coordinator = build_coordinator(config, logger)
    coordinator.install_signal_handlers()
    try:
        exit_code = coordinator.run()
    except (CertificateError, ListenerError) as error:
        logger.critical(
            str(error),
            extra={
                "event": "fatal_error",
                "error_type": type(error).__name__,
                "state": coordinator.state.value,
            },
        )
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
