from __future__ import annotations

from app.api.routes.analytics import router as analytics_router
from app.api.routes.errors import router as errors_router
from app.api.routes.health import router as health_router

__all__ = ["analytics_router", "errors_router", "health_router"]
