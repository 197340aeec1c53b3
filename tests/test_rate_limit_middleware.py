"""Tests for the rate limiting middleware and per-endpoint dependency."""

from datetime import datetime

import pytest

from app.core import rate_limit as rate_limit_module
from app.core.rate_limit import RouteClass, get_client_ip, resolve_route_class


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/api/errors", RouteClass.API),
        ("/api/analytics", RouteClass.API),
        ("/auth/login", RouteClass.AUTH),
        ("/dashboard/invoices", RouteClass.GENERAL),
        ("/", RouteClass.GENERAL),
        ("/apis", RouteClass.GENERAL),
    ],
)
def test_resolve_route_class(path: str, expected: RouteClass) -> None:
    assert resolve_route_class(path) is expected


class TestMiddleware:
    def test_admitted_response_carries_quota_headers(self, make_client) -> None:
        client = make_client()

        response = client.get("/dashboard")

        assert response.status_code == 404
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        reset = response.headers["X-RateLimit-Reset"]
        assert reset.endswith("Z")
        datetime.fromisoformat(reset.replace("Z", "+00:00"))

    def test_auth_routes_block_after_limit(self, make_client) -> None:
        client = make_client(auth_requests=2)

        assert client.get("/auth/login").status_code == 404
        assert client.get("/auth/login").status_code == 404

        blocked = client.get("/auth/login")
        assert blocked.status_code == 429
        assert blocked.json() == {
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
        }
        assert blocked.headers["X-RateLimit-Limit"] == "2"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert int(blocked.headers["Retry-After"]) == 900

    def test_route_classes_have_separate_budgets(self, make_client) -> None:
        client = make_client(auth_requests=1)

        assert client.get("/auth/login").status_code == 404
        assert client.get("/auth/login").status_code == 429

        assert client.get("/dashboard").status_code == 404
        assert client.get("/api/errors").status_code == 200

    def test_window_reset_readmits(self, make_client, clock) -> None:
        client = make_client(auth_requests=1)

        assert client.get("/auth/signup").status_code == 404
        assert client.get("/auth/signup").status_code == 429

        clock.advance_ms(900_001)
        response = client.get("/auth/signup")
        assert response.status_code == 404
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_health_is_exempt(self, make_client) -> None:
        client = make_client(general_requests=1)

        for _ in range(3):
            response = client.get("/health")
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers

    def test_disabled_skips_limiting(self, make_client, monkeypatch: pytest.MonkeyPatch) -> None:
        client = make_client(general_requests=1)
        monkeypatch.setattr(rate_limit_module.settings.rate_limit, "enabled", False)

        for _ in range(3):
            response = client.get("/dashboard")
            assert response.status_code == 404
            assert "X-RateLimit-Limit" not in response.headers

    def test_headers_can_be_turned_off(self, make_client, monkeypatch: pytest.MonkeyPatch) -> None:
        client = make_client(general_requests=1)
        monkeypatch.setattr(rate_limit_module.settings.rate_limit, "include_headers", False)

        assert "X-RateLimit-Limit" not in client.get("/dashboard").headers
        blocked = client.get("/dashboard")
        assert blocked.status_code == 429
        assert "X-RateLimit-Limit" not in blocked.headers

    def test_forwarded_for_separates_clients(
        self, make_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        client = make_client(general_requests=1)
        monkeypatch.setattr(rate_limit_module.settings.rate_limit, "trust_forwarded_for", True)

        first = {"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}
        second = {"X-Forwarded-For": "10.0.0.2"}

        assert client.get("/dashboard", headers=first).status_code == 404
        assert client.get("/dashboard", headers=first).status_code == 429
        assert client.get("/dashboard", headers=second).status_code == 404


class TestEndpointDependency:
    def test_errors_endpoint_has_its_own_namespace(self, make_client) -> None:
        client = make_client(api_requests=3)
        payload = {"message": "boom", "timestamp": "2024-05-01T10:00:00Z"}

        # Each POST consumes api:<ip> in the middleware and errors:<ip> in the route.
        assert client.post("/api/errors", json=payload).status_code == 200
        assert client.post("/api/errors", json=payload).status_code == 200
        assert client.post("/api/errors", json=payload).status_code == 200

        blocked = client.post("/api/errors", json=payload)
        assert blocked.status_code == 429

    def test_endpoint_limit_rejects_with_error_body(self, make_client) -> None:
        client = make_client(api_requests=1)
        limiters = client.app.state.rate_limiters
        limiters[RouteClass.API].check("errors:testclient")

        response = client.post(
            "/api/errors", json={"message": "boom", "timestamp": "2024-05-01T10:00:00Z"}
        )

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded"}
        assert response.headers["X-RateLimit-Limit"] == "1"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["Retry-After"] == "60"

    def test_admitted_response_reports_endpoint_quota(self, make_client) -> None:
        client = make_client(api_requests=5)
        limiters = client.app.state.rate_limiters
        limiters[RouteClass.API].check("errors:testclient")
        limiters[RouteClass.API].check("errors:testclient")

        response = client.post(
            "/api/errors", json={"message": "boom", "timestamp": "2024-05-01T10:00:00Z"}
        )

        # The middleware's api:<ip> budget still has 4 left; the endpoint's has 2.
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "2"

    def test_endpoint_limit_disabled_with_rate_limiting(
        self, make_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        client = make_client(api_requests=1)
        monkeypatch.setattr(rate_limit_module.settings.rate_limit, "enabled", False)
        payload = {"message": "boom", "timestamp": "2024-05-01T10:00:00Z"}

        for _ in range(3):
            response = client.post("/api/errors", json=payload)
            assert response.status_code == 200
            assert "X-RateLimit-Remaining" not in response.headers


class TestClientIp:
    def _request(self, headers: dict[str, str], client=("198.51.100.4", 1234)):
        from starlette.requests import Request

        scope = {
            "type": "http",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": client,
        }
        return Request(scope)

    def test_uses_socket_peer_by_default(self) -> None:
        request = self._request({"X-Forwarded-For": "10.0.0.9"})

        assert get_client_ip(request) == "198.51.100.4"

    def test_uses_first_forwarded_hop_when_trusted(self) -> None:
        request = self._request({"X-Forwarded-For": " 10.0.0.9 , 10.0.0.1"})

        assert get_client_ip(request, trust_forwarded_for=True) == "10.0.0.9"

    def test_falls_back_to_loopback(self) -> None:
        request = self._request({}, client=None)

        assert get_client_ip(request, trust_forwarded_for=True) == "127.0.0.1"
