"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and pins defaults the tests
rely on before the settings object is created.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "0")

import pytest  # noqa: E402


class FakeClock:
    """Settable time source returning UNIX seconds."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms / 1000

    def advance_ms(self, millis: int) -> None:
        self.now_ms += millis


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(clock: FakeClock):
    """Build a TestClient whose limiters run on the fake clock.

    Keyword overrides are applied to a copy of the rate limit settings
    before the limiters are built (e.g. ``api_requests=2``).
    """
    from fastapi.testclient import TestClient

    from app.core.app_factory import create_app
    from app.core.config import settings
    from app.core.rate_limit import build_rate_limiters

    def _make(**overrides) -> TestClient:
        cfg = settings.rate_limit.model_copy(update=overrides)
        limiters = build_rate_limiters(cfg, clock=clock)
        return TestClient(create_app(rate_limiters=limiters))

    return _make
