from datetime import UTC, datetime

import pytest

from onescheduler.models.domain import Tenant
from onescheduler.tenancy.router import (
    LOADING_PAGE,
    SETUP_PATH,
    Redirect,
    Render,
    resolve_route,
    tenant_path,
)


def _tenant(slug: str) -> Tenant:
    now = datetime.now(UTC)
    return Tenant(
        id=f"id-{slug}",
        name=slug.replace("-", " ").title(),
        slug=slug,
        code="AB3F9K2Q",
        created_at=now,
        updated_at=now,
    )


LINCOLN = _tenant("lincoln-high")


@pytest.mark.unit
class TestResolveRoute:
    def test_loading_renders_loading(self) -> None:
        assert resolve_route("lincoln-high", LINCOLN, True, None) == Render(LOADING_PAGE)

    def test_loading_wins_over_everything(self) -> None:
        assert resolve_route(None, None, True, "Failed to fetch schools") == Render(LOADING_PAGE)

    def test_no_tenant_goes_to_setup(self) -> None:
        assert resolve_route("lincoln-high", None, False, None) == Redirect(SETUP_PATH)

    def test_no_tenant_with_error_goes_to_setup(self) -> None:
        decision = resolve_route(None, None, False, "Failed to fetch schools")
        assert decision == Redirect(SETUP_PATH)

    def test_missing_slug_redirects_to_current(self) -> None:
        decision = resolve_route(None, LINCOLN, False, None)
        assert decision == Redirect("/lincoln-high/dashboard")

    def test_other_slug_redirects_to_current(self) -> None:
        decision = resolve_route("other-school", LINCOLN, False, None)
        assert decision == Redirect("/lincoln-high/dashboard")
        assert not isinstance(decision, Render)

    def test_redirect_keeps_requested_page(self) -> None:
        decision = resolve_route("other-school", LINCOLN, False, None, page="timetable")
        assert decision == Redirect("/lincoln-high/timetable")

    def test_error_with_matching_slug_goes_to_setup(self) -> None:
        decision = resolve_route("lincoln-high", LINCOLN, False, "Failed to fetch schools")
        assert decision == Redirect(SETUP_PATH, message="Failed to fetch schools")

    def test_matching_slug_renders(self) -> None:
        assert resolve_route("lincoln-high", LINCOLN, False, None) == Render("dashboard")

    def test_pure(self) -> None:
        args = ("other-school", LINCOLN, False, None)
        assert resolve_route(*args) == resolve_route(*args)


@pytest.mark.unit
def test_tenant_path() -> None:
    assert tenant_path("lincoln-high") == "/lincoln-high/dashboard"
    assert tenant_path("lincoln-high", "settings") == "/lincoln-high/settings"
