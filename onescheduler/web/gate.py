"""Session gate: protected routes require a confirmed signed-in user."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote

import structlog
from fastapi import HTTPException, Request

from onescheduler.config.settings import get_settings
from onescheduler.models.domain import User
from onescheduler.tenancy.router import LOGIN_PATH
from onescheduler.types import GateStatus

if TYPE_CHECKING:
    from onescheduler.identity.provider import IdentityProvider

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GateResult:
    status: GateStatus
    user: User | None = None
    error: str | None = None


class SessionGate:
    """Asks the identity provider for the current user, once per check."""

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity

    async def check(self, token: str | None) -> GateResult:
        try:
            user = await self._identity.get_current_user(token)
        except Exception as exc:
            logger.error("auth_check_failed", error=str(exc))
            return GateResult(GateStatus.ERROR, error="Authentication error. Please log in again.")
        if user is None:
            return GateResult(GateStatus.UNAUTHENTICATED)
        return GateResult(GateStatus.AUTHENTICATED, user=user)


def login_url(next_path: str) -> str:
    """Sign-in URL that returns the user to ``next_path`` afterwards."""
    return f"{LOGIN_PATH}?next={quote(next_path, safe='/')}"


async def require_user(request: Request) -> User:
    """Dependency for protected routes. Raises 401 unless signed in.

    The app's 401 handler turns this into a redirect to the sign-in page
    for browser requests.
    """
    from onescheduler.web.dependencies import identity

    token = request.cookies.get(get_settings().session_cookie)
    result = await SessionGate(identity).check(token)
    if result.status is not GateStatus.AUTHENTICATED or result.user is None:
        detail = result.error or "Please log in to access this page"
        raise HTTPException(status_code=401, detail=detail)
    request.state.user = result.user
    return result.user
