"""Static file tree responder."""

import logging
import mimetypes
from http import HTTPStatus
from pathlib import Path
from typing import Iterator, Optional

from staticsite.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from staticsite.domain.http_types import (
    Handler,
    HttpRequest,
    HttpResponse,
    RequestContext,
    should_close,
)
from staticsite.domain.response_builders import (
    PLAIN_TEXT,
    forbidden_response,
    not_found_response,
    options_response,
)
from staticsite.domain.sandbox import ForbiddenPath, resolve_sandbox_path

STATIC_LOGGER = component_logger("handlers.static")

ACME_CHALLENGE_PREFIX = "/.well-known/acme-challenge/"
INDEX_DOCUMENT = "index.html"
SERVED_METHODS = ("GET", "HEAD", "OPTIONS")

# Well-known documents keyed by base name.
WELL_KNOWN_FILES: dict[str, dict[str, str]] = {
    "robots.txt": {"Content-Type": PLAIN_TEXT, "Cache-Control": "max-age=300"},
    "security.txt": {"Content-Type": PLAIN_TEXT},
}


def stream_file(filepath: Path, chunk_size: int = 65536) -> Iterator[bytes]:
    """Yield file contents in fixed-size chunks for streaming responses."""
    with open(filepath, "rb") as file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def content_type_for_path(filepath: Path) -> str:
    mime_type, _ = mimetypes.guess_type(filepath.name)
    if mime_type is None:
        return "application/octet-stream"
    if mime_type.startswith("text/"):
        return f"{mime_type}; charset=utf-8"
    return mime_type


def file_response(request: HttpRequest, resolved_path: Path) -> HttpResponse:
    """Stream ``resolved_path`` with headers chosen from its name."""
    headers = {"Content-Type": content_type_for_path(resolved_path)}
    headers.update(WELL_KNOWN_FILES.get(resolved_path.name, {}))
    return HttpResponse(
        int(HTTPStatus.OK),
        headers,
        b"",
        should_close(request.headers),
        body_iter=stream_file(resolved_path),
        content_length=resolved_path.stat().st_size,
    )


def static_handler(
    directory: str, logger: Optional[CorrelationLoggerAdapter] = None
) -> Handler:
    """Return a handler serving files under ``directory`` verbatim.

    Directories serve their index document; there are no listings. The ACME
    challenge path is reserved for the plaintext challenge listener and
    always answers 404 here.
    """
    log = logger or STATIC_LOGGER

    def handle(ctx: RequestContext, request: HttpRequest) -> HttpResponse:
        if request.path.startswith(ACME_CHALLENGE_PREFIX):
            return not_found_response(request)
        if request.method == "OPTIONS":
            return options_response(request, SERVED_METHODS)

        try:
            resolved_path = resolve_sandbox_path(directory, request.path)
        except ForbiddenPath:
            log.warning(
                "Forbidden path access blocked",
                extra={"event": "forbidden_path", "route": request.path},
            )
            return forbidden_response(request)

        if resolved_path.is_dir():
            resolved_path = resolved_path / INDEX_DOCUMENT
        if not resolved_path.is_file():
            if log.logger.isEnabledFor(logging.DEBUG):
                log.debug(
                    "File not found",
                    extra={"event": "file_not_found", "route": request.path},
                )
            return not_found_response(request)

        return file_response(request, resolved_path)

    return handle
