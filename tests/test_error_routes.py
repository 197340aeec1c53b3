"""Tests for client error ingestion and severity triage."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from app.schemas.client_error import ClientErrorEvent, ErrorSeverity
from app.services.error_reporting import (
    ErrorReportingService,
    build_slack_payload,
    determine_severity,
)


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Payment intent failed", ErrorSeverity.CRITICAL),
        ("Unauthorized access to invoice", ErrorSeverity.CRITICAL),
        ("Database connection lost", ErrorSeverity.CRITICAL),
        ("AuthSessionMissingError", ErrorSeverity.CRITICAL),
        ("Network request failed", ErrorSeverity.HIGH),
        ("Request TIMEOUT after 30s", ErrorSeverity.HIGH),
        ("Internal server error", ErrorSeverity.HIGH),
        ("Validation failed for amount", ErrorSeverity.MEDIUM),
        ("Cannot read properties of undefined", ErrorSeverity.MEDIUM),
    ],
)
def test_determine_severity(message: str, expected: ErrorSeverity) -> None:
    assert determine_severity(message) is expected


def _event(severity: ErrorSeverity = ErrorSeverity.CRITICAL) -> ClientErrorEvent:
    return ClientErrorEvent(
        message="Payment failed",
        timestamp=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
        url="https://app.example.com/dashboard/invoices",
        user_agent="pytest",
        referer="",
        environment="testing",
        severity=severity,
    )


def test_slack_payload_mentions_message_and_url() -> None:
    payload = build_slack_payload(_event())

    text = payload["blocks"][0]["text"]["text"]
    assert "Payment failed" in text
    assert "https://app.example.com/dashboard/invoices" in text
    assert "2024-05-01T10:00:00+00:00" in text


class TestCriticalAlerts:
    @pytest.mark.asyncio
    async def test_posts_to_webhook(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        service = ErrorReportingService(
            webhook_url="https://hooks.slack.test/T000/B000",
            transport=httpx.MockTransport(handler),
        )

        assert await service.send_critical_alert(_event()) is True
        assert len(seen) == 1
        assert seen[0].url == "https://hooks.slack.test/T000/B000"

    @pytest.mark.asyncio
    async def test_webhook_failure_is_reported_not_raised(self) -> None:
        service = ErrorReportingService(
            webhook_url="https://hooks.slack.test/T000/B000",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        assert await service.send_critical_alert(_event()) is False

    @pytest.mark.asyncio
    async def test_no_webhook_configured(self) -> None:
        assert await ErrorReportingService().send_critical_alert(_event()) is False

    @pytest.mark.asyncio
    async def test_only_critical_events_alert(self) -> None:
        service = ErrorReportingService(webhook_url="https://hooks.slack.test/x")
        service.send_critical_alert = AsyncMock(return_value=True)

        await service.record(_event(ErrorSeverity.HIGH), client_key_hash="abc")
        service.send_critical_alert.assert_not_awaited()

        await service.record(_event(ErrorSeverity.CRITICAL), client_key_hash="abc")
        service.send_critical_alert.assert_awaited_once()


class TestErrorRoutes:
    def test_accepts_valid_report(self, make_client) -> None:
        client = make_client()

        response = client.post(
            "/api/errors",
            json={
                "message": "Cannot read properties of undefined",
                "timestamp": "2024-05-01T10:00:00Z",
                "stack": "TypeError: ...",
                "name": "TypeError",
                "url": "https://app.example.com/dashboard",
                "userAgent": "Mozilla/5.0",
                "context": {"component": "InvoiceForm"},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}

    @pytest.mark.parametrize(
        "payload",
        [
            {"timestamp": "2024-05-01T10:00:00Z"},
            {"message": "boom"},
            {"message": "", "timestamp": "2024-05-01T10:00:00Z"},
            {"message": "boom", "timestamp": 0},
        ],
    )
    def test_missing_required_fields_returns_400(self, make_client, payload: dict) -> None:
        client = make_client()

        response = client.post("/api/errors", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: message, timestamp"}

    def test_critical_report_triggers_alert(self, make_client) -> None:
        client = make_client()
        reporter = client.app.state.error_reporter
        reporter.send_critical_alert = AsyncMock(return_value=True)

        response = client.post(
            "/api/errors",
            json={"message": "Payment provider rejected card", "timestamp": "2024-05-01T10:00:00Z"},
        )

        assert response.status_code == 200
        reporter.send_critical_alert.assert_awaited_once()
        event = reporter.send_critical_alert.await_args.args[0]
        assert event.severity is ErrorSeverity.CRITICAL
        assert event.user_agent == "testclient"

    def test_health_probe(self, make_client) -> None:
        client = make_client()

        response = client.get("/api/errors")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "error-tracking"
        assert "timestamp" in data

    def test_unparsable_timestamp_falls_back_to_receive_time(self, make_client) -> None:
        client = make_client()
        reporter = client.app.state.error_reporter
        reporter.record = AsyncMock()

        response = client.post("/api/errors", json={"message": "boom", "timestamp": "yesterday"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        event = reporter.record.await_args.args[0]
        assert event.timestamp.tzinfo is not None

    def test_epoch_millis_timestamp_is_parsed(self, make_client) -> None:
        client = make_client()
        reporter = client.app.state.error_reporter
        reporter.record = AsyncMock()

        response = client.post("/api/errors", json={"message": "boom", "timestamp": 1714557600000})

        assert response.status_code == 200
        event = reporter.record.await_args.args[0]
        assert event.timestamp == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
