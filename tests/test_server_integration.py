"""Integration tests for rate limiting with a real HTTP server.

These tests start an actual Uvicorn server so limits and headers are
checked over real sockets, avoiding TestClient shortcuts.
"""

import multiprocessing
import time
from typing import Generator

import httpx
import pytest
import uvicorn


def run_server():
    """Run FastAPI server in a separate process."""
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8001,
        log_level="error",
        access_log=False,
    )


@pytest.fixture(scope="module")
def server() -> Generator[str, None, None]:
    """Start server in background process for integration tests."""
    process = multiprocessing.Process(target=run_server, daemon=True)
    process.start()

    base_url = "http://127.0.0.1:8001"
    for _ in range(30):
        try:
            response = httpx.get(f"{base_url}/health", timeout=1.0)
            if response.status_code == 200:
                break
        except (httpx.ConnectError, httpx.ReadTimeout):
            time.sleep(0.1)
    else:
        process.terminate()
        pytest.fail("Server failed to start")

    yield base_url

    process.terminate()
    process.join(timeout=5)


class TestRateLimitOverHttp:
    def test_auth_route_allows_five_then_throttles(self, server: str) -> None:
        remaining = []
        for _ in range(5):
            response = httpx.post(f"{server}/auth/login", timeout=5.0)
            assert response.status_code != 429
            remaining.append(int(response.headers["X-RateLimit-Remaining"]))

        assert remaining == [4, 3, 2, 1, 0]

        blocked = httpx.post(f"{server}/auth/login", timeout=5.0)
        assert blocked.status_code == 429
        assert blocked.headers["X-RateLimit-Limit"] == "5"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert 0 < int(blocked.headers["Retry-After"]) <= 900

    def test_other_route_classes_unaffected(self, server: str) -> None:
        response = httpx.get(f"{server}/api/errors", timeout=5.0)

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "50"
