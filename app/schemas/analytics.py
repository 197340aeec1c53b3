"""Pydantic schemas for performance/analytics events posted by the browser."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AnalyticsEventReport(BaseModel):
    """Metric event sent by the frontend performance monitor.

    ``type``, ``data`` and ``timestamp`` are required; presence is checked
    by the route so a missing field yields the documented 400 body.
    """

    type: str | None = Field(None, description="Metric name, e.g. LCP or page_load")
    data: Any = Field(None, description="Metric payload (free-form JSON)")
    timestamp: str | int | float | None = Field(
        None,
        description="When the metric was taken: epoch milliseconds or ISO-8601 string",
    )


class AnalyticsEvent(BaseModel):
    """Event enriched with request metadata before it is recorded."""

    type: str
    data: Any
    timestamp: datetime
    user_agent: str
    referer: str
    environment: str


class AnalyticsServiceHealth(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    service: str = "analytics"
