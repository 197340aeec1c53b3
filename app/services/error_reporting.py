"""Client error ingestion: severity triage, logging and critical alerts."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.schemas.client_error import ClientErrorEvent, ErrorSeverity

logger = logging.getLogger(__name__)

# Checked in order; first matching tier wins.
_SEVERITY_KEYWORDS: tuple[tuple[ErrorSeverity, tuple[str, ...]], ...] = (
    (ErrorSeverity.CRITICAL, ("security", "unauthorized", "payment", "database", "auth")),
    (ErrorSeverity.HIGH, ("network", "timeout", "server", "api")),
    (ErrorSeverity.MEDIUM, ("validation", "format", "parse")),
)


def determine_severity(message: str, stack: str | None = None) -> ErrorSeverity:
    """Classify an error by keywords in its message.

    Args:
        message: Reported error message.
        stack: Stack trace (currently unused for classification).

    Returns:
        ErrorSeverity; MEDIUM when nothing matches.

    Examples:
        >>> determine_severity("Payment intent failed")
        <ErrorSeverity.CRITICAL: 'critical'>
        >>> determine_severity("Request timeout")
        <ErrorSeverity.HIGH: 'high'>
    """

    lowered = message.lower()
    for severity, keywords in _SEVERITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return severity
    return ErrorSeverity.MEDIUM


def build_slack_payload(event: ClientErrorEvent) -> dict[str, Any]:
    return {
        "text": "Critical Error Alert",
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        "*Critical Error Detected*\n\n"
                        f"*Message:* {event.message}\n"
                        f"*URL:* {event.url}\n"
                        f"*Environment:* {event.environment}\n"
                        f"*Time:* {event.timestamp.isoformat()}"
                    ),
                },
            }
        ],
    }


class ErrorReportingService:
    """Records client error events and forwards critical ones to Slack.

    Attributes:
        webhook_url: Slack incoming webhook; alerts are skipped when unset.
        timeout_seconds: Outbound webhook timeout.
    """

    def __init__(
        self,
        *,
        webhook_url: str | None = None,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def record(self, event: ClientErrorEvent, *, client_key_hash: str) -> None:
        """Log the event and alert on critical severity."""

        logger.error(
            "client_error.reported",
            extra={
                "error_name": event.name,
                "error_message": event.message,
                "severity": event.severity.value,
                "page_url": event.url,
                "environment": event.environment,
                "key_hash": client_key_hash,
                "has_stack": bool(event.stack),
            },
        )

        if event.severity is ErrorSeverity.CRITICAL:
            await self.send_critical_alert(event)

    async def send_critical_alert(self, event: ClientErrorEvent) -> bool:
        """Post the event to Slack.

        Alert delivery failures are logged and reported as False; they never
        fail the ingestion request.

        Returns:
            True when the webhook accepted the alert.
        """

        if not self.webhook_url:
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.webhook_url, json=build_slack_payload(event))
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "client_error.alert_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return False

        logger.info("client_error.alert_sent", extra={"severity": event.severity.value})
        return True
