"""Unit tests for the middleware in onescheduler/web/middleware.py."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from onescheduler.web.middleware import (
    DeviceIDMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(**rate_limit: object) -> FastAPI:
    """Build a minimal FastAPI app with the middleware stack attached."""
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, **rate_limit)
    app.add_middleware(DeviceIDMiddleware, cookie_name="device_id", secure=False)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/ping")
    async def api_ping(request: Request) -> dict[str, str]:
        return {"device_id": request.state.device_id}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRequestIDMiddleware:
    async def test_generates_request_id(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/health")
        assert resp.headers["x-request-id"]

    async def test_echoes_incoming_request_id(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["x-request-id"] == "req-123"


@pytest.mark.unit
class TestDeviceIDMiddleware:
    async def test_issues_cookie_on_first_visit(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/api/ping")
        assert resp.cookies.get("device_id") == resp.json()["device_id"]
        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    async def test_keeps_existing_device_id(self) -> None:
        async with _client(_make_app()) as client:
            first = await client.get("/api/ping")
            second = await client.get("/api/ping")
        assert first.json()["device_id"] == second.json()["device_id"]
        assert "set-cookie" not in second.headers

    async def test_uses_cookie_sent_by_browser(self) -> None:
        async with _client(_make_app()) as client:
            client.cookies.set("device_id", "known-device")
            resp = await client.get("/api/ping")
        assert resp.json()["device_id"] == "known-device"


@pytest.mark.unit
class TestRateLimitMiddleware:
    def test_default_parameters(self) -> None:
        middleware = RateLimitMiddleware(FastAPI())
        assert middleware._max_requests == 60
        assert middleware._window == 60
        assert middleware._prefix == "/api/"

    async def test_request_exceeding_limit_returns_429(self) -> None:
        async with _client(_make_app(max_requests=3, window_seconds=45)) as client:
            for _ in range(3):
                assert (await client.get("/api/ping")).status_code == 200
            resp = await client.get("/api/ping")
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "45"
        assert resp.json()["code"] == "rate_limited"

    async def test_non_api_path_not_rate_limited(self) -> None:
        async with _client(_make_app(max_requests=1)) as client:
            for _ in range(5):
                assert (await client.get("/health")).status_code == 200

    async def test_expired_window_entries_are_pruned(self) -> None:
        app = _make_app(max_requests=2, window_seconds=1)
        with patch("onescheduler.web.middleware.time") as mock_time:
            mock_time.monotonic.side_effect = [0.0, 0.0, 2.0]
            async with _client(app) as client:
                for _ in range(2):
                    await client.get("/api/ping")
                resp = await client.get("/api/ping")
        assert resp.status_code == 200

    async def test_rate_limit_warning_logged_on_exceed(self) -> None:
        with patch("onescheduler.web.middleware.logger") as mock_logger:
            async with _client(_make_app(max_requests=1)) as client:
                await client.get("/api/ping")
                await client.get("/api/ping")
            mock_logger.warning.assert_called_once()
            call_kwargs = mock_logger.warning.call_args[1]
            assert "ip" in call_kwargs
            assert "path" in call_kwargs
