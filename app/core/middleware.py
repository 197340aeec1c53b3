"""HTTP middleware for request correlation and response hardening.

- ``request_id_middleware`` accepts an incoming X-Request-ID header (or
  generates a UUID), stores it in contextvars for log correlation and echoes
  it back together with the request duration.
- ``security_headers_middleware`` attaches the browser security headers the
  invoicing frontend relies on (CSP, framing, sniffing, referrer and
  permissions policies).

Usage:
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(security_headers_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id


def build_content_security_policy(connect_src: str) -> str:
    """Assemble the Content-Security-Policy header value."""

    return "; ".join(
        [
            "default-src 'self'",
            "script-src 'self' 'unsafe-eval' 'unsafe-inline'",
            "style-src 'self' 'unsafe-inline'",
            "img-src 'self' data: https:",
            "font-src 'self'",
            f"connect-src {connect_src}",
        ]
    )


def build_security_headers(connect_src: str) -> dict[str, str]:
    return {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        "Content-Security-Policy": build_content_security_policy(connect_src),
    }


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the configured request id header, that value is
    used; otherwise a new UUID is generated. The id is stored in contextvars
    for the lifetime of the request and cleared afterwards.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Attach security headers to every response, including 429s."""

    response: Response = await call_next(request)
    if not settings.app.security_headers_enabled:
        return response

    for name, value in build_security_headers(settings.app.csp_connect_src).items():
        response.headers.setdefault(name, value)
    return response
