"""FastAPI middleware: request ID, device ID and rate limiting."""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a unique X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class DeviceIDMiddleware(BaseHTTPMiddleware):
    """Gives every browser a long-lived device id cookie.

    The id namespaces the browser's persisted preferences and is exposed
    to handlers as ``request.state.device_id``.
    """

    def __init__(
        self,
        app: object,
        cookie_name: str = "device_id",
        max_age: int = 365 * 86400,
        secure: bool = True,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._cookie = cookie_name
        self._max_age = max_age
        self._secure = secure

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        device_id = request.cookies.get(self._cookie)
        issued = False
        if not device_id:
            device_id = uuid.uuid4().hex
            issued = True
        request.state.device_id = device_id
        structlog.contextvars.bind_contextvars(device_id=device_id)
        response = await call_next(request)
        if issued:
            response.set_cookie(
                key=self._cookie,
                value=device_id,
                httponly=True,
                secure=self._secure,
                samesite="lax",
                max_age=self._max_age,
            )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple in-memory rate limiter for API endpoints.

    Limits requests per IP to `max_requests` within `window_seconds`.
    Only applies to paths starting with the given prefix (default: /api/).
    """

    def __init__(
        self,
        app: object,
        max_requests: int = 60,
        window_seconds: int = 60,
        prefix: str = "/api/",
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._max_requests = max_requests
        self._window = window_seconds
        self._prefix = prefix
        self._hits: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self._prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()

        self._hits[client_ip] = [t for t in self._hits[client_ip] if now - t < self._window]

        if len(self._hits[client_ip]) >= self._max_requests:
            logger.warning("rate_limit_exceeded", ip=client_ip, path=request.url.path)
            return JSONResponse(
                {
                    "detail": "Rate limit exceeded. Try again later.",
                    "code": "rate_limited",
                    "retryable": True,
                },
                status_code=429,
                headers={"Retry-After": str(self._window)},
            )

        self._hits[client_ip].append(now)
        return await call_next(request)
