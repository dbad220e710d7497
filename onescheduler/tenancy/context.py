"""Per-session tenant context: memberships and the currently selected tenant.

All mutation goes through ``refresh`` and ``select_tenant`` so that the
current tenant and current role always come from the same membership.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from onescheduler.exceptions import TenantFetchError
from onescheduler.models.domain import ContextSnapshot, Tenant, UserTenant
from onescheduler.types import AuthEvent, ContextState, UserRole

if TYPE_CHECKING:
    from onescheduler.identity.provider import IdentityProvider
    from onescheduler.models.domain import User
    from onescheduler.storage.preferences import TenantPreference
    from onescheduler.storage.repositories.tenants import TenantStore

logger = structlog.get_logger(__name__)


class TenantContext:
    """Tenant state owned by one signed-in browser session."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: TenantStore,
        preference: TenantPreference,
        session_token: str,
        on_closed: Callable[[TenantContext], None] | None = None,
    ) -> None:
        self._identity = identity
        self._store = store
        self._preference = preference
        self._session_token = session_token
        self._on_closed = on_closed

        self._memberships: list[UserTenant] = []
        self._current: UserTenant | None = None
        self._loading = False
        self._error: str | None = None
        self._state = ContextState.UNINITIALIZED
        self._request_seq = 0
        self._closed = False
        self._subscription = identity.on_auth_state_change(self._on_auth_change)

    @property
    def session_token(self) -> str:
        return self._session_token

    @property
    def current_tenant(self) -> Tenant | None:
        return self._current.tenant if self._current else None

    @property
    def current_role(self) -> UserRole | None:
        return self._current.role if self._current else None

    @property
    def memberships(self) -> tuple[UserTenant, ...]:
        return tuple(self._memberships)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            current_tenant=self.current_tenant,
            current_role=self.current_role,
            memberships=list(self._memberships),
            loading=self._loading,
            error=self._error,
        )

    async def refresh(self) -> None:
        """Reload memberships and resolve the current tenant.

        Only the most recently started refresh is applied. Failures set
        ``error`` and keep the previously loaded state.
        """
        if self._closed:
            return

        self._request_seq += 1
        seq = self._request_seq
        self._loading = True
        self._error = None
        self._state = ContextState.LOADING

        try:
            user = await self._identity.get_current_user(self._session_token)
            memberships = await self._store.get_user_tenants(user.id) if user else []
        except Exception as exc:
            if self._is_latest(seq):
                self._error = TenantFetchError().message
                self._settle()
            logger.warning("tenant_refresh_failed", error=str(exc), seq=seq)
            return
        finally:
            if self._is_latest(seq):
                self._loading = False

        if not self._is_latest(seq):
            logger.info("tenant_refresh_dropped", seq=seq, latest=self._request_seq)
            return

        if user is None:
            self._clear()
            return

        self._memberships = list(memberships)
        self._resolve_current()
        self._settle()
        logger.info(
            "tenants_refreshed",
            user_id=user.id,
            count=len(self._memberships),
            tenant=self.current_tenant.slug if self.current_tenant else None,
        )

    def select_tenant(self, slug: str) -> None:
        """Make ``slug`` current if the user belongs to it; otherwise do nothing."""
        membership = self._find(slug)
        if membership is None:
            logger.debug("tenant_select_ignored", slug=slug)
            return
        self._current = membership
        self._preference.set(slug)
        self._settle()
        logger.info("tenant_selected", slug=slug, role=membership.role.value)

    def close(self) -> None:
        """Clear all state, wipe the stored preference and stop listening."""
        if self._closed:
            return
        self._clear()
        self._closed = True
        self._loading = False
        self._subscription.unsubscribe()
        if self._on_closed is not None:
            self._on_closed(self)

    def _on_auth_change(self, event: AuthEvent, token: str, _user: User | None) -> None:
        if event is AuthEvent.SIGNED_OUT and token == self._session_token:
            logger.info("tenant_context_signed_out")
            self.close()

    def _resolve_current(self) -> None:
        stored = self._preference.get()
        if stored:
            match = self._find(stored)
            if match is not None:
                self._current = match
                return

        if self._memberships:
            self._current = self._memberships[0]
            self._preference.set(self._current.tenant.slug)
        else:
            self._current = None

    def _clear(self) -> None:
        self._memberships = []
        self._current = None
        self._preference.clear()
        self._state = ContextState.CLEARED

    def _settle(self) -> None:
        if self._current is not None:
            self._state = ContextState.READY_WITH_TENANT
        else:
            self._state = ContextState.READY_WITHOUT_TENANT

    def _find(self, slug: str) -> UserTenant | None:
        return next((m for m in self._memberships if m.tenant.slug == slug), None)

    def _is_latest(self, seq: int) -> bool:
        return not self._closed and seq == self._request_seq
