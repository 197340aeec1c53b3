from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import RateLimitDecision
from app.core.config import settings
from app.core.logging import hash_for_log
from app.core.rate_limit import (
    RouteClass,
    apply_rate_limit_headers,
    enforce_rate_limit,
    get_client_ip,
)
from app.schemas.analytics import (
    AnalyticsEvent,
    AnalyticsEventReport,
    AnalyticsServiceHealth,
)
from app.services.analytics import record_analytics_event
from app.utils.client_payloads import missing_fields, parse_client_timestamp

router = APIRouter(tags=["Analytics"])


@router.post(
    "/analytics",
    responses={400: {"description": "Missing type, data or timestamp"}, 429: {"description": "Rate limit exceeded"}},
)
async def report_analytics_event(
    report: AnalyticsEventReport,
    request: Request,
    quota: RateLimitDecision | None = Depends(enforce_rate_limit("analytics", RouteClass.API)),
) -> JSONResponse:
    """Ingest a performance metric from the browser.

    Returns:
        JSONResponse: ``{"success": true}`` or a 400 for missing fields.
    """
    if missing_fields(report.model_dump(), ("type", "data", "timestamp")):
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required fields: type, data, timestamp"},
        )

    event = AnalyticsEvent(
        type=report.type,
        data=report.data,
        timestamp=parse_client_timestamp(report.timestamp) or datetime.now(timezone.utc),
        user_agent=request.headers.get("user-agent") or "unknown",
        referer=request.headers.get("referer", ""),
        environment=settings.app_env,
    )

    client_ip = get_client_ip(request, trust_forwarded_for=settings.rate_limit.trust_forwarded_for)
    record_analytics_event(event, client_key_hash=hash_for_log(client_ip))

    response = JSONResponse(status_code=200, content={"success": True})
    apply_rate_limit_headers(response, quota)
    return response


@router.get("/analytics", response_model=AnalyticsServiceHealth)
def analytics_service_health() -> AnalyticsServiceHealth:
    """Health probe for the analytics endpoint."""

    return AnalyticsServiceHealth(timestamp=datetime.now(timezone.utc))
