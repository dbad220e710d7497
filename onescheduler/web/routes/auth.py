"""Authentication routes: sign-in, registration, OAuth and sign-out."""

from __future__ import annotations

from pathlib import Path

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from onescheduler.config.settings import get_settings
from onescheduler.exceptions import AuthError
from onescheduler.identity.passwords import validate_new_password
from onescheduler.tenancy.router import SETUP_PATH
from onescheduler.storage.preferences import TenantPreference
from onescheduler.web.dependencies import (
    get_device_id,
    get_session_token,
    identity,
    preference_store,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])
templates = Jinja2Templates(directory=str(Path(__file__).parent.parent / "templates"))

DEFAULT_NEXT = "/dashboard"


def safe_next(next_url: str | None) -> str:
    """Only allow same-site relative redirect targets."""
    if not next_url or not next_url.startswith("/") or next_url.startswith("//"):
        return DEFAULT_NEXT
    return next_url


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=settings.session_max_age,
    )


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, next: str | None = None) -> HTMLResponse:  # noqa: A002
    """Render the sign-in page, or skip it when already signed in."""
    target = safe_next(next)
    if await identity.get_current_user(get_session_token(request)):
        return RedirectResponse(url=target, status_code=302)  # type: ignore[return-value]
    return templates.TemplateResponse(
        request,
        "login.html",
        {"next": target, "providers": get_settings().oauth_providers},
    )


@router.get("/register", response_class=HTMLResponse)
async def register_page(request: Request) -> HTMLResponse:
    if await identity.get_current_user(get_session_token(request)):
        return RedirectResponse(url=DEFAULT_NEXT, status_code=302)  # type: ignore[return-value]
    return templates.TemplateResponse(request, "register.html")


@router.get("/auth/callback", response_class=HTMLResponse)
async def auth_callback(request: Request) -> HTMLResponse:
    """Finish an OAuth round trip."""
    try:
        user = await identity.handle_auth_callback(get_session_token(request))
    except AuthError as exc:
        logger.warning("auth_callback_failed", error=exc.message)
        return templates.TemplateResponse(
            request, "callback.html", {"error": exc.message}, status_code=401
        )
    logger.info("auth_callback_completed", user_id=user.id)
    return templates.TemplateResponse(
        request, "callback.html", {"error": None, "redirect_to": DEFAULT_NEXT}
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str
    next: str | None = None


class RegisterRequest(BaseModel):
    email: str
    password: str
    confirm_password: str


@router.post("/api/auth/login")
async def login(body: LoginRequest, response: Response) -> dict[str, str]:
    """Sign in with email and password."""
    user, token = await identity.sign_in(body.email, body.password)
    _set_session_cookie(response, token)
    logger.info("user_logged_in", user_id=user.id)
    return {"status": "ok", "email": user.email, "redirect": safe_next(body.next)}


@router.post("/api/auth/register", status_code=201)
async def register(body: RegisterRequest, response: Response) -> dict[str, str]:
    """Create an account, sign it in and send it to school setup."""
    validate_new_password(body.password, body.confirm_password)
    user, token = await identity.sign_up(body.email, body.password)
    _set_session_cookie(response, token)
    return {"status": "ok", "email": user.email, "redirect": SETUP_PATH}


@router.get("/api/auth/oauth/{provider}")
async def oauth_start(provider: str) -> RedirectResponse:
    """Send the browser to the identity provider's authorize page."""
    url = identity.oauth_authorize_url(provider)
    logger.info("oauth_started", provider=provider)
    return RedirectResponse(url=url, status_code=302)


@router.post("/api/auth/logout")
async def logout(request: Request, response: Response) -> dict[str, str]:
    """Destroy the current session."""
    token = get_session_token(request)
    if token:
        await identity.sign_out(token)
    TenantPreference(preference_store, get_device_id(request)).clear()
    response.delete_cookie(get_settings().session_cookie)
    return {"status": "logged_out", "redirect": "/login"}
