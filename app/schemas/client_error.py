"""Pydantic schemas for browser error reports."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class ErrorSeverity(str, Enum):
    """Triage level assigned to a reported error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ClientErrorReport(BaseModel):
    """Error report posted by the frontend error boundary.

    Only ``message`` and ``timestamp`` are required; the route checks them
    itself so a missing field yields the documented 400 body. Any timestamp
    shape is accepted; unparsable values fall back to the receive time.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = Field(None, description="Error message")
    timestamp: str | int | float | None = Field(
        None,
        description="When the error happened: ISO-8601 string or epoch milliseconds",
    )
    stack: str | None = Field(None, description="JavaScript stack trace")
    name: str | None = Field(None, description="Error class name, e.g. TypeError")
    url: str | None = Field(None, description="Page URL where the error happened")
    user_agent: str | None = Field(
        None,
        alias="userAgent",
        description="Browser user agent reported by the client",
    )
    context: Dict[str, Any] | None = Field(
        None,
        description="Free-form component context (props, route params, ...)",
    )


class ClientErrorEvent(BaseModel):
    """Enriched event logged (and possibly alerted) for a report."""

    message: str
    timestamp: datetime
    stack: str | None = None
    name: str | None = None
    url: str | None = None
    user_agent: str
    referer: str
    context: Dict[str, Any] | None = None
    environment: str
    severity: ErrorSeverity


class ErrorServiceHealth(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    service: str = "error-tracking"
