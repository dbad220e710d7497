"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from onescheduler.config.logging import setup_logging
from onescheduler.config.settings import get_settings
from onescheduler.exceptions import OneSchedulerError
from onescheduler.web.gate import login_url, require_user
from onescheduler.web.middleware import DeviceIDMiddleware, RateLimitMiddleware, RequestIDMiddleware
from onescheduler.web.routes.auth import router as auth_router
from onescheduler.web.routes.pages import router as pages_router
from onescheduler.web.routes.tenants import router as tenants_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    if get_settings().use_database:
        from onescheduler.storage.database import init_db

        await init_db()
    yield


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="One Scheduler",
        description="School scheduling dashboard",
        version="0.1.0",
        lifespan=_lifespan,
    )

    # Redirect 401s to /login for browser page requests; return JSON for API
    @app.exception_handler(401)
    async def auth_redirect_handler(
        request: Request, exc: HTTPException
    ) -> RedirectResponse | JSONResponse:
        if not _is_api(request):
            next_url = request.url.path
            if request.url.query:
                next_url = f"{next_url}?{request.url.query}"
            return RedirectResponse(url=login_url(next_url), status_code=302)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # Unknown pages go to the dashboard; unknown API paths stay 404
    @app.exception_handler(404)
    async def not_found_handler(
        request: Request, exc: HTTPException
    ) -> RedirectResponse | JSONResponse:
        if not _is_api(request) and request.method == "GET":
            return RedirectResponse(url="/dashboard", status_code=302)
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(OneSchedulerError)
    async def domain_error_handler(request: Request, exc: OneSchedulerError) -> JSONResponse:
        logger.info("request_failed", code=exc.code, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
        )

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(
        RateLimitMiddleware, max_requests=settings.rate_limit_per_minute, window_seconds=60
    )
    app.add_middleware(
        DeviceIDMiddleware,
        cookie_name=settings.device_cookie,
        max_age=settings.device_cookie_max_age,
        secure=not settings.debug,
    )
    app.add_middleware(RequestIDMiddleware)

    # Public routes (no auth required)
    app.include_router(auth_router)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        from onescheduler.web.health import check_health

        return await check_health()

    # Protected routes (API returns 401, pages redirect to /login)
    app.include_router(tenants_router, dependencies=[Depends(require_user)])
    app.include_router(pages_router)

    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    logger.info("app_created")
    return app
