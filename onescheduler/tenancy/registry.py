"""Owns one tenant context (and its flows) per signed-in session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from onescheduler.storage.preferences import TenantPreference
from onescheduler.tenancy.context import TenantContext
from onescheduler.tenancy.flows import TenantFlows
from onescheduler.types import ContextState

if TYPE_CHECKING:
    from onescheduler.identity.provider import IdentityProvider
    from onescheduler.storage.preferences import PreferenceStore
    from onescheduler.storage.repositories.tenants import TenantStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SessionScope:
    context: TenantContext
    flows: TenantFlows


class TenantContextRegistry:
    """Creates a scope on the first protected request of a session and
    drops it when the context closes (sign-out or expiry)."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: TenantStore,
        preferences: PreferenceStore,
        redirect_delay_seconds: int = 5,
        name_check_interval: float = 0.5,
    ) -> None:
        self._identity = identity
        self._store = store
        self._preferences = preferences
        self._redirect_delay = redirect_delay_seconds
        self._name_check_interval = name_check_interval
        self._scopes: dict[str, SessionScope] = {}

    def get(self, session_token: str) -> SessionScope | None:
        return self._scopes.get(session_token)

    def mount(self, session_token: str, device_id: str) -> SessionScope:
        """Return the session's scope, creating it if needed."""
        scope = self._scopes.get(session_token)
        if scope is not None:
            return scope

        context = TenantContext(
            identity=self._identity,
            store=self._store,
            preference=TenantPreference(self._preferences, device_id),
            session_token=session_token,
            on_closed=self._drop,
        )
        flows = TenantFlows(
            context,
            self._store,
            self._identity,
            redirect_delay_seconds=self._redirect_delay,
            name_check_interval=self._name_check_interval,
        )
        scope = SessionScope(context=context, flows=flows)
        self._scopes[session_token] = scope
        logger.debug("tenant_context_mounted", active=len(self._scopes))
        return scope

    async def mount_loaded(
        self, session_token: str, device_id: str, *, reload: bool = False
    ) -> SessionScope:
        """Mount the session's scope and load its memberships.

        A new context always runs its initial refresh; ``reload`` refreshes
        an existing one too, picking up memberships added elsewhere.
        """
        if session_token not in self._scopes:
            await self.prune()
        scope = self.mount(session_token, device_id)
        context = scope.context
        if reload or context.state is ContextState.UNINITIALIZED:
            await context.refresh()
        return scope

    async def prune(self) -> int:
        """Close scopes whose session is no longer valid. Returns how many."""
        pruned = 0
        for token, scope in list(self._scopes.items()):
            if await self._identity.get_current_user(token) is None:
                scope.context.close()
                self._scopes.pop(token, None)
                pruned += 1
        if pruned:
            logger.info("tenant_contexts_pruned", pruned=pruned, active=len(self._scopes))
        return pruned

    def __len__(self) -> int:
        return len(self._scopes)

    def _drop(self, context: TenantContext) -> None:
        self._scopes.pop(context.session_token, None)
        logger.debug("tenant_context_dropped", active=len(self._scopes))
