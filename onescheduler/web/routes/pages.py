"""Server-rendered HTML page routes."""

from __future__ import annotations

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from onescheduler.models.domain import User
from onescheduler.tenancy.context import TenantContext
from onescheduler.tenancy.router import (
    LOADING_PAGE,
    SETUP_PATH,
    Redirect,
    resolve_route,
    tenant_path,
)
from onescheduler.tenancy.slugs import INVITE_CODE_LENGTH, NAME_MAX_LENGTH, NAME_MIN_LENGTH
from onescheduler.web.dependencies import get_page_context
from onescheduler.web.gate import require_user

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["pages"])

templates = Jinja2Templates(directory=str(Path(__file__).parent.parent / "templates"))


@router.get("/")
async def index() -> RedirectResponse:
    return RedirectResponse(url="/dashboard", status_code=302)


@router.get("/tenant/setup", response_class=HTMLResponse)
async def setup_page(
    request: Request,
    context: TenantContext = Depends(get_page_context),
    user: User = Depends(require_user),
) -> Response:
    # Users who already belong to a school go straight to it, unless the
    # context is in error (the dashboard would send them back here).
    if context.current_tenant is not None and not context.error and not context.loading:
        return RedirectResponse(url=tenant_path(context.current_tenant.slug), status_code=302)
    return templates.TemplateResponse(
        request,
        "setup.html",
        {
            "user": user,
            "error": context.error,
            "loading": context.loading,
            "name_min": NAME_MIN_LENGTH,
            "name_max": NAME_MAX_LENGTH,
            "code_length": INVITE_CODE_LENGTH,
        },
    )


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard_without_slug(
    request: Request,
    context: TenantContext = Depends(get_page_context),
    user: User = Depends(require_user),
) -> Response:
    return _tenant_page(request, None, "dashboard", context, user)


@router.get("/{tenant_slug}/dashboard", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    tenant_slug: str,
    context: TenantContext = Depends(get_page_context),
    user: User = Depends(require_user),
) -> Response:
    return _tenant_page(request, tenant_slug, "dashboard", context, user)


def _tenant_page(
    request: Request,
    url_slug: str | None,
    page: str,
    context: TenantContext,
    user: User,
) -> Response:
    decision = resolve_route(
        url_slug,
        context.current_tenant,
        context.loading,
        context.error,
        page=page,
    )
    if isinstance(decision, Redirect):
        if decision.message:
            logger.warning("tenant_context_error", error=decision.message)
        elif decision.target != SETUP_PATH:
            logger.debug("tenant_url_corrected", requested=url_slug, target=decision.target)
        return RedirectResponse(url=decision.target, status_code=302)

    if decision.page == LOADING_PAGE:
        return templates.TemplateResponse(request, "loading.html", {"retry_url": request.url.path})

    return templates.TemplateResponse(
        request,
        f"{decision.page}.html",
        {
            "user": user,
            "tenant": context.current_tenant,
            "role": context.current_role,
            "memberships": context.memberships,
        },
    )
