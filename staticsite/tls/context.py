"""TLS context construction shared by both provisioning paths."""

import ssl
import tempfile
from pathlib import Path


class CertificateError(Exception):
    """Raised when a TLS certificate cannot be provisioned."""


def new_server_context() -> ssl.SSLContext:
    """Return a server-side context that negotiates TLS 1.3 only."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_3
    return context


def load_pem_chain(context: ssl.SSLContext, key_pem: bytes, chain_pem: bytes) -> None:
    """Load an in-memory key and certificate chain into ``context``.

    ``ssl`` only reads key material from files, so the PEM is staged in a
    private temporary directory that is removed before returning.
    """
    with tempfile.TemporaryDirectory(prefix="staticsite-tls-") as staging:
        bundle = Path(staging) / "bundle.pem"
        bundle.touch(mode=0o600)
        bundle.write_bytes(chain_pem + key_pem)
        context.load_cert_chain(bundle)
