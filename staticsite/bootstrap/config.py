"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


LETS_ENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"

DEFAULT_ADDR = ":4433"
DEFAULT_CHALLENGE_ADDR = ":80"
DEFAULT_SELF_SIGN = _env_bool("STATICSITE_SELF_SIGN", True)
DEFAULT_CERT_CACHE = os.getenv("STATICSITE_CERT_CACHE", "/etc/ssl/private")
DEFAULT_FSDIR = os.getenv("STATICSITE_FSDIR", "static")
DEFAULT_ALLOWED_HOSTS = _env_list("STATICSITE_ALLOWED_HOSTS", ["localhost"])
DEFAULT_ACME_DIRECTORY = os.getenv("STATICSITE_ACME_DIRECTORY", LETS_ENCRYPT_DIRECTORY)

READ_TIMEOUT_SECONDS = 5.0
WRITE_TIMEOUT_SECONDS = 10.0
IDLE_TIMEOUT_SECONDS = 60.0
MAX_HEADER_BYTES = (1 << 20) >> 8
MAX_BODY_BYTES = _env_int("STATICSITE_MAX_BODY_BYTES", 64 * 1024)

HEADER_DELIMITER = b"\r\n\r\n"


@dataclass(frozen=True)
class ServerConfig:
    """Immutable process configuration shared by every listener."""

    addr: str
    self_sign: bool
    cert_cache: str
    fsdir: str
    allowed_hosts: tuple[str, ...]
    challenge_addr: str = DEFAULT_CHALLENGE_ADDR
    acme_directory: str = LETS_ENCRYPT_DIRECTORY
    acme_email: Optional[str] = None
    read_timeout: float = READ_TIMEOUT_SECONDS
    write_timeout: float = WRITE_TIMEOUT_SECONDS
    idle_timeout: float = IDLE_TIMEOUT_SECONDS
    max_header_bytes: int = MAX_HEADER_BYTES


def split_host_port(addr: str) -> tuple[str, int]:
    """Split ``host:port`` (``:port`` and ``[v6]:port`` accepted) into parts."""
    host, separator, port = addr.rpartition(":")
    if not separator or not port.isdigit():
        raise ValueError(f"invalid listen address: {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _comma_list(value: str) -> list[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the static site server."""
    parser = argparse.ArgumentParser(
        prog="staticsite",
        description="Serve a static file tree over HTTPS",
    )
    parser.add_argument("--addr", default=DEFAULT_ADDR, help="listen address")
    parser.add_argument(
        "-s",
        "--self-sign",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_SELF_SIGN,
        help="self-sign X509 certificate instead of using ACME",
    )
    parser.add_argument(
        "-c",
        "--cert-cache",
        default=DEFAULT_CERT_CACHE,
        help="X509 certificate cache directory",
    )
    parser.add_argument(
        "--fsdir", default=DEFAULT_FSDIR, help="file system directory to serve"
    )
    parser.add_argument(
        "--challenge-addr",
        default=DEFAULT_CHALLENGE_ADDR,
        help="plaintext listen address for ACME HTTP-01 challenges",
    )
    parser.add_argument(
        "--allowed-hosts",
        type=_comma_list,
        default=[host.lower() for host in DEFAULT_ALLOWED_HOSTS],
        help="comma-separated host allow-list; the first entry is canonical",
    )
    parser.add_argument(
        "--acme-directory",
        default=DEFAULT_ACME_DIRECTORY,
        help="ACME directory URL",
    )
    parser.add_argument(
        "--acme-email",
        default=os.getenv("STATICSITE_ACME_EMAIL"),
        help="contact email registered with the ACME account",
    )
    default_log_level = os.getenv("STATICSITE_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("STATICSITE_LOG_DESTINATION", "stdout")
    default_format = os.getenv("STATICSITE_LOG_FORMAT", "json").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_format,
        choices=["json", "text"],
        type=str.lower,
    )
    return parser


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments; usage errors exit with status 2."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cert_cache:
        parser.error("certificate cache directory must not be empty")
    if not args.allowed_hosts:
        parser.error("at least one allowed host is required")

    port = os.getenv("PORT")
    if port:
        args.addr = f":{port}"
    try:
        split_host_port(args.addr)
        split_host_port(args.challenge_addr)
    except ValueError as error:
        parser.error(str(error))
    return args


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Freeze parsed arguments into the shared server configuration."""
    return ServerConfig(
        addr=args.addr,
        self_sign=args.self_sign,
        cert_cache=args.cert_cache,
        fsdir=args.fsdir,
        allowed_hosts=tuple(args.allowed_hosts),
        challenge_addr=args.challenge_addr,
        acme_directory=args.acme_directory,
        acme_email=args.acme_email,
    )
