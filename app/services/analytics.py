"""Analytics event intake.

Events are only logged; aggregation and forwarding to an analytics backend
happen downstream of the log pipeline.
"""

from __future__ import annotations

import logging

from app.schemas.analytics import AnalyticsEvent

logger = logging.getLogger(__name__)


def record_analytics_event(event: AnalyticsEvent, *, client_key_hash: str) -> None:
    """Log one analytics event as ``analytics.event_received``."""

    logger.info(
        "analytics.event_received",
        extra={
            "event_type": event.type,
            "event_data": event.data,
            "event_timestamp": event.timestamp.isoformat(),
            "environment": event.environment,
            "key_hash": client_key_hash,
        },
    )
