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
from app.schemas.client_error import (
    ClientErrorEvent,
    ClientErrorReport,
    ErrorServiceHealth,
)
from app.services.error_reporting import ErrorReportingService, determine_severity
from app.utils.client_payloads import missing_fields, parse_client_timestamp

router = APIRouter(tags=["Errors"])


def get_error_reporter(request: Request) -> ErrorReportingService:
    return request.app.state.error_reporter


@router.post(
    "/errors",
    responses={400: {"description": "Missing message or timestamp"}, 429: {"description": "Rate limit exceeded"}},
)
async def report_client_error(
    report: ClientErrorReport,
    request: Request,
    quota: RateLimitDecision | None = Depends(enforce_rate_limit("errors", RouteClass.API)),
    reporter: ErrorReportingService = Depends(get_error_reporter),
) -> JSONResponse:
    """Ingest an error report from the browser.

    The report is enriched with request metadata, triaged by severity and
    logged. Critical reports are forwarded to the alert webhook. Quota
    headers describe this endpoint's own ``errors:<ip>`` budget.

    Returns:
        JSONResponse: ``{"success": true}`` or a 400 for missing fields.
    """
    if missing_fields(report.model_dump(), ("message", "timestamp")):
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required fields: message, timestamp"},
        )

    event = ClientErrorEvent(
        message=report.message,
        timestamp=parse_client_timestamp(report.timestamp) or datetime.now(timezone.utc),
        stack=report.stack,
        name=report.name,
        url=report.url,
        user_agent=request.headers.get("user-agent") or report.user_agent or "unknown",
        referer=request.headers.get("referer", ""),
        context=report.context,
        environment=settings.app_env,
        severity=determine_severity(report.message, report.stack),
    )

    client_ip = get_client_ip(request, trust_forwarded_for=settings.rate_limit.trust_forwarded_for)
    await reporter.record(event, client_key_hash=hash_for_log(client_ip))

    response = JSONResponse(status_code=200, content={"success": True})
    apply_rate_limit_headers(response, quota)
    return response


@router.get("/errors", response_model=ErrorServiceHealth)
def error_service_health() -> ErrorServiceHealth:
    """Health probe for the error-tracking endpoint."""

    return ErrorServiceHealth(timestamp=datetime.now(timezone.utc))
