"""Security headers and HTTPS redirection."""

import urllib.parse
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from staticsite.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from staticsite.domain.http_types import Handler, HttpRequest, HttpResponse, RequestContext
from staticsite.domain.response_builders import redirect_response
from staticsite.pipeline.middleware import Middleware

HEADERS_LOGGER = component_logger("security.headers")

CSP_NONE = "'none'"
CSP_SELF = "'self'"

# Deny everything, then allow only what the site needs.
CSP_DIRECTIVES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "default-src": (CSP_NONE,),
        "base-uri": (CSP_NONE,),
        "font-src": (CSP_SELF,),
        "form-action": (CSP_NONE,),
        "frame-ancestors": (CSP_NONE,),
        "img-src": (CSP_SELF,),
        "style-src": (CSP_SELF,),
    }
)


def build_content_security_policy(directives: Mapping[str, Sequence[str]]) -> str:
    """Render CSP directives in sorted order so the policy string is stable."""
    rendered = sorted(
        f"{name} {' '.join(sources)}" for name, sources in directives.items()
    )
    return "; ".join(rendered)


DEFAULT_CSP = build_content_security_policy(CSP_DIRECTIVES)

HSTS_VALUE = "max-age=63072000; includeSubDomains; preload"


def security_headers(csp: str = DEFAULT_CSP) -> Mapping[str, str]:
    """Return the fixed header set attached to every secure response."""
    return MappingProxyType(
        {
            "Strict-Transport-Security": HSTS_VALUE,
            "Content-Security-Policy": csp,
            # Superseded by the frame-ancestors directive in modern browsers.
            "X-Frame-Options": "DENY",
            "Permissions-Policy": "interest-cohort=()",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "same-origin",
        }
    )


SECURITY_HEADERS = security_headers()


def canonical_host(host: str, allowed_hosts: frozenset[str], fallback: str) -> str:
    """Return the lower-cased host when allow-listed, else ``fallback``."""
    name = host.lower()
    if name in allowed_hosts:
        return name
    return fallback


def https_location(request: HttpRequest) -> str:
    """Build the https:// equivalent of the request's URL."""
    parts = urllib.parse.urlsplit(request.target)
    host = parts.netloc if parts.scheme else request.host
    hostname, separator, port = host.rpartition(":")
    if separator and port == "80":
        host = hostname
    path = parts.path or "/"
    query = f"?{parts.query}" if parts.query else ""
    return f"https://{host}{path}{query}"


def is_secure(request: HttpRequest) -> bool:
    return request.tls and request.scheme != "http"


def secure_headers(
    allowed_hosts: Iterable[str],
    fallback_host: Optional[str] = None,
    csp: str = DEFAULT_CSP,
    logger: Optional[CorrelationLoggerAdapter] = None,
) -> Middleware:
    """Return a middleware enforcing HTTPS and attaching security headers.

    Plaintext requests receive a 301 to their https:// equivalent and nothing
    else. Secure responses always carry the full header set.
    """
    hosts = frozenset(host.lower() for host in allowed_hosts)
    if not hosts and fallback_host is None:
        raise ValueError("secure_headers requires at least one allowed host")
    fallback = (fallback_host or sorted(hosts)[0]).lower()
    headers = security_headers(csp)
    log = logger or HEADERS_LOGGER

    def middleware(next_handler: Handler) -> Handler:
        def handle(ctx: RequestContext, request: HttpRequest) -> HttpResponse:
            ctx.canonical_host = canonical_host(request.host, hosts, fallback)
            if ctx.canonical_host != request.host.lower():
                log.debug(
                    "Host outside allow-list",
                    extra={"event": "host_fallback", "host": request.host},
                )

            if not is_secure(request):
                return redirect_response(https_location(request), request)

            response = next_handler(ctx, request)
            response.headers.update(headers)
            return response

        return handle

    return middleware
