"""Reconcile the URL's tenant slug with the session's current tenant.

``resolve_route`` is a pure function of its inputs and returns either a
``Render`` or a ``Redirect``. Rules are checked in order; the first match wins:

1. loading                  -> render the loading page
2. no current tenant        -> redirect to tenant setup
3. no slug in the URL       -> redirect to the current tenant's URL
4. slug differs from current-> redirect to the current tenant's URL
5. context error            -> redirect to tenant setup, carrying the error
6. otherwise                -> render the requested page
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from onescheduler.models.domain import Tenant

SETUP_PATH = "/tenant/setup"
LOGIN_PATH = "/login"
LOADING_PAGE = "loading"
DEFAULT_PAGE = "dashboard"


@dataclass(frozen=True, slots=True)
class Render:
    page: str


@dataclass(frozen=True, slots=True)
class Redirect:
    target: str
    message: str | None = None


RouteDecision = Render | Redirect


def tenant_path(slug: str, page: str = DEFAULT_PAGE) -> str:
    """Canonical URL of a page inside a tenant."""
    return f"/{slug}/{page}"


def resolve_route(
    url_slug: str | None,
    current_tenant: Tenant | None,
    loading: bool,
    error: str | None,
    page: str = DEFAULT_PAGE,
) -> RouteDecision:
    if loading:
        return Render(LOADING_PAGE)
    if current_tenant is None:
        return Redirect(SETUP_PATH)
    if not url_slug or url_slug != current_tenant.slug:
        return Redirect(tenant_path(current_tenant.slug, page))
    if error:
        return Redirect(SETUP_PATH, message=error)
    return Render(page)
