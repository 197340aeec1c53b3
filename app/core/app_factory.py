from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, limiters, middleware, handlers,
routers) so tests can build isolated instances with their own limiters.
"""

from fastapi import FastAPI

from app.api.routes import analytics_router, errors_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.lifespan import lifespan
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware, security_headers_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RateLimiters, build_rate_limiters, rate_limit_middleware
from app.services.error_reporting import ErrorReportingService


def create_app(*, rate_limiters: RateLimiters | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiters: Pre-built limiters per route class; built from
            settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Invoicing Edge API",
        description=(
            "HTTP edge of the invoicing application. Throttles requests per "
            "client IP with fixed-window limits per route class (general, "
            "api, auth), attaches X-RateLimit-* and security headers, and "
            "ingests browser error reports and performance metrics."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    app.state.rate_limiters = rate_limiters or build_rate_limiters(settings.rate_limit)
    app.state.error_reporter = ErrorReportingService(
        webhook_url=settings.app.slack_webhook_url,
        timeout_seconds=settings.app.alert_timeout_seconds,
    )

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(errors_router, prefix="/api")
    app.include_router(analytics_router, prefix="/api")
    app.include_router(health_router)

    # OpenAPI customizations (tags, 429 response docs)
    apply_openapi_customizations(app)

    return app
