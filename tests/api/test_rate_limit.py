"""Tests for the rate limiting middleware."""

import sys
from pathlib import Path

# Add project root to path (tests/api/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from middleware.rate_limit import RateLimitConfig, RateLimitMiddleware


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def _client(clock, **limits) -> TestClient:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, config=RateLimitConfig(**limits), clock=clock)

    @app.get("/spreadsheets/{sheet_id}")
    async def read(sheet_id: str):
        return {"id": sheet_id}

    @app.get("/spreadsheets/{sheet_id}/export/{fmt}")
    async def export(sheet_id: str, fmt: str):
        return {"fmt": fmt}

    return TestClient(app)


class TestRateLimit:
    """Sliding windows per client."""

    def test_headers_on_success(self, clock):
        client = _client(clock, requests_per_minute=5)
        response = client.get("/spreadsheets/a")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_burst_limit(self, clock):
        client = _client(clock, burst_limit=2)
        assert client.get("/spreadsheets/a").status_code == 200
        assert client.get("/spreadsheets/a").status_code == 200
        blocked = client.get("/spreadsheets/a")
        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "1"

        clock.now += 1.5
        assert client.get("/spreadsheets/a").status_code == 200

    def test_minute_limit_reports_retry_after(self, clock):
        client = _client(clock, requests_per_minute=2, burst_limit=100)
        client.get("/spreadsheets/a")
        clock.now += 20
        client.get("/spreadsheets/a")

        blocked = client.get("/spreadsheets/a")
        assert blocked.status_code == 429
        assert blocked.json()["retry_after"] == 40

        clock.now += 41
        assert client.get("/spreadsheets/a").status_code == 200

    def test_exports_have_their_own_limit(self, clock):
        client = _client(clock, heavy_requests_per_minute=1, burst_limit=100)
        assert client.get("/spreadsheets/a/export/csv").status_code == 200
        assert client.get("/spreadsheets/a/export/csv").status_code == 429
        assert client.get("/spreadsheets/a").status_code == 200

    def test_clients_are_tracked_separately(self, clock):
        client = _client(clock, burst_limit=1)
        assert client.get("/spreadsheets/a", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/spreadsheets/a", headers={"X-Forwarded-For": "10.0.0.2, 10.0.0.9"}).status_code == 200
        assert client.get("/spreadsheets/a", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429

    def test_idle_clients_are_forgotten(self, clock):
        limiter = RateLimitMiddleware(FastAPI(), config=RateLimitConfig(idle_sweep_seconds=300), clock=clock)
        limiter.clients["10.0.0.1"].hour.stamps.append(clock.now)
        limiter.clients["10.0.0.2"].hour.stamps.append(clock.now + 3000)

        clock.now += 3700
        limiter._sweep_idle(clock.now)
        assert set(limiter.clients) == {"10.0.0.2"}

        clock.now += 3600
        limiter._sweep_idle(clock.now)
        assert limiter.clients == {}
