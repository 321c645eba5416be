"""TLS certificate provisioning: ACME-managed or ephemeral self-signed."""

import datetime
import secrets
import ssl
from dataclasses import dataclass
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from staticsite.bootstrap.config import ServerConfig
from staticsite.domain.correlation_id import (
    CorrelationLoggerAdapter,
    child_logger,
    component_logger,
)
from staticsite.domain.http_types import Handler
from staticsite.tls.acme_manager import AcmeManager, hostname_policy
from staticsite.tls.context import CertificateError, load_pem_chain, new_server_context
from staticsite.tls.dir_cache import DirCache

CERT_LOGGER = component_logger("tls")

SELF_SIGNED_VALIDITY = datetime.timedelta(days=7)
SELF_SIGNED_ORGANIZATION = "web"
CLOCK_SKEW = datetime.timedelta(minutes=1)


@dataclass(frozen=True)
class TLSConfig:
    """Material the listener coordinator needs to serve TLS.

    ``challenge_handler`` is set only when certificates come from ACME and a
    plaintext HTTP-01 listener must run alongside the TLS listener.
    """

    context: ssl.SSLContext
    challenge_handler: Optional[Handler] = None
    certificate: Optional[x509.Certificate] = None


def self_signed_certificate(
    now: Optional[datetime.datetime] = None,
    validity: datetime.timedelta = SELF_SIGNED_VALIDITY,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Generate a fresh P-256 key and a self-signed CA certificate for it."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, SELF_SIGNED_ORGANIZATION)])
    not_before = now - CLOCK_SKEW
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(secrets.randbelow((1 << 128) - 1) + 1)
        .not_valid_before(not_before)
        .not_valid_after(not_before + validity)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    return certificate, key


def self_signed_tls_config(
    logger: Optional[CorrelationLoggerAdapter] = None,
) -> TLSConfig:
    """Return a TLS 1.3 context holding a brand new self-signed certificate.

    Nothing is cached; every call produces a new key pair.
    """
    log = logger or CERT_LOGGER
    try:
        certificate, key = self_signed_certificate()
        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        context = new_server_context()
        load_pem_chain(
            context, key_pem, certificate.public_bytes(serialization.Encoding.PEM)
        )
    except (ValueError, ssl.SSLError, OSError) as exc:
        raise CertificateError(f"self-signed certificate generation failed: {exc}") from exc

    log.info(
        "Self-signed certificate generated",
        extra={
            "event": "self_signed_ready",
            "not_after": certificate.not_valid_after_utc.isoformat(),
        },
    )
    return TLSConfig(context=context, certificate=certificate)


def acme_tls_config(
    config: ServerConfig, logger: Optional[CorrelationLoggerAdapter] = None
) -> TLSConfig:
    """Return an SNI-driven ACME context plus its HTTP-01 challenge handler."""
    log = logger or CERT_LOGGER
    cache = DirCache(config.cert_cache)
    try:
        cache.ensure()
    except OSError as exc:
        raise CertificateError(
            f"certificate cache {config.cert_cache!r} unusable: {exc}"
        ) from exc

    manager = AcmeManager(
        cache,
        hostname_policy(),
        config.acme_directory,
        email=config.acme_email,
        logger=child_logger(logger, "acme") if logger is not None else None,
    )
    log.info(
        "ACME certificate manager ready",
        extra={"event": "acme_ready", "addr": config.acme_directory},
    )
    return TLSConfig(context=manager.tls_context(), challenge_handler=manager.http_handler())


def provide_tls_config(
    config: ServerConfig, logger: Optional[CorrelationLoggerAdapter] = None
) -> TLSConfig:
    """Produce the listener TLS configuration; TLS 1.3 is always the floor."""
    if config.self_sign:
        tls_config = self_signed_tls_config(logger)
    else:
        tls_config = acme_tls_config(config, logger)
    tls_config.context.minimum_version = ssl.TLSVersion.TLSv1_3
    return tls_config
