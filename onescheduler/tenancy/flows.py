"""Create, join and switch flows, plus the school name availability check.

Flows never write session state themselves: after a remote change they call
``TenantContext.refresh`` and ``TenantContext.select_tenant``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from onescheduler.exceptions import (
    AlreadyMemberError,
    AuthError,
    InvalidInviteCodeError,
    NameConflictError,
    OneSchedulerError,
    RemoteFailureError,
    RemoteStoreError,
    RequestInFlightError,
    ValidationError,
)
from onescheduler.models.domain import CreateTenantParams, JoinTenantParams, NameCheck
from onescheduler.tenancy.router import SETUP_PATH, tenant_path
from onescheduler.tenancy.slugs import normalize_invite_code, validate_tenant_name

if TYPE_CHECKING:
    from onescheduler.identity.provider import IdentityProvider
    from onescheduler.models.domain import Tenant, User
    from onescheduler.storage.repositories.tenants import TenantStore
    from onescheduler.tenancy.context import TenantContext

logger = structlog.get_logger(__name__)

NAME_CHECK_FAILED = "Could not verify school name availability. Please try again."


@dataclass(frozen=True, slots=True)
class SetupResult:
    """Outcome of a successful create or join."""

    tenant: Tenant
    redirect_to: str
    redirect_delay_seconds: int


def map_store_error(exc: Exception) -> OneSchedulerError:
    """Normalize a store failure into a user-facing error kind."""
    if isinstance(exc, OneSchedulerError) and not isinstance(exc, RemoteStoreError):
        return exc
    reason = getattr(exc, "reason", "")
    if reason in ("invalid_code", "not_found"):
        return InvalidInviteCodeError()
    if reason == "already_member":
        return AlreadyMemberError()
    if reason == "name_taken":
        return NameConflictError()
    return RemoteFailureError()


class NameAvailabilityChecker:
    """Asynchronous name check keeping a single "latest pending" slot.

    Requests are spaced at least ``min_interval`` seconds apart. Starting a
    new check cancels the previous one if it is still pending; the cancelled
    caller receives a result with ``superseded=True``.
    """

    def __init__(
        self,
        store: TenantStore,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request = float("-inf")
        self._pending: asyncio.Task[NameCheck] | None = None

    async def check(self, name: str) -> NameCheck:
        try:
            name = validate_tenant_name(name)
        except ValidationError as e:
            return NameCheck(name=name, error=e.message)

        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        task = asyncio.ensure_future(self._run(name))
        self._pending = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current and current.cancelling()):
                return NameCheck(name=name, superseded=True)
            raise

    async def _run(self, name: str) -> NameCheck:
        wait = self._last_request + self._min_interval - self._clock()
        if wait > 0:
            await self._sleep(wait)
        self._last_request = self._clock()
        try:
            available = await self._store.check_tenant_name_available(name)
        except Exception as e:
            logger.warning("name_check_failed", name=name, error=str(e))
            return NameCheck(name=name, error=NAME_CHECK_FAILED)
        if not available:
            return NameCheck(name=name, error="This school name is already taken")
        return NameCheck(name=name, available=True)


class TenantFlows:
    """User-facing tenant operations for one session."""

    def __init__(
        self,
        context: TenantContext,
        store: TenantStore,
        identity: IdentityProvider,
        redirect_delay_seconds: int = 5,
        name_check_interval: float = 0.5,
    ) -> None:
        self._context = context
        self._store = store
        self._identity = identity
        self._redirect_delay = redirect_delay_seconds
        self._submit_lock = asyncio.Lock()
        self.name_checker = NameAvailabilityChecker(store, min_interval=name_check_interval)

    async def create_tenant(self, name: str) -> SetupResult:
        """Create a school; the caller becomes its super_admin."""
        name = validate_tenant_name(name)
        async with self._exclusive():
            user = await self._require_user()
            try:
                available = await self._store.check_tenant_name_available(name)
            except Exception as e:
                logger.warning("name_check_failed", name=name, error=str(e))
                raise RemoteFailureError(NAME_CHECK_FAILED) from e
            if not available:
                raise NameConflictError()

            try:
                tenant = await self._store.create_tenant(
                    CreateTenantParams(name=name, user_id=user.id)
                )
            except Exception as e:
                logger.warning("tenant_create_failed", name=name, error=str(e))
                raise map_store_error(e) from e

            return await self._enter(tenant)

    async def join_tenant(self, invite_code: str) -> SetupResult:
        """Join a school by invite code."""
        code = normalize_invite_code(invite_code)
        async with self._exclusive():
            user = await self._require_user()
            try:
                tenant = await self._store.join_tenant(
                    JoinTenantParams(invite_code=code, user_id=user.id)
                )
            except Exception as e:
                logger.warning("tenant_join_failed", error=str(e))
                raise map_store_error(e) from e

            return await self._enter(tenant)

    def switch_tenant(self, slug: str) -> str:
        """Select another of the user's schools and return its URL."""
        if not any(m.tenant.slug == slug for m in self._context.memberships):
            msg = "You are not a member of this school"
            raise ValidationError(msg)
        self._context.select_tenant(slug)
        current = self._context.current_tenant
        return tenant_path(current.slug) if current else SETUP_PATH

    async def _enter(self, tenant: Tenant) -> SetupResult:
        await self._context.refresh()
        self._context.select_tenant(tenant.slug)
        current = self._context.current_tenant
        target = tenant_path(current.slug) if current else SETUP_PATH
        return SetupResult(
            tenant=tenant,
            redirect_to=target,
            redirect_delay_seconds=self._redirect_delay,
        )

    async def _require_user(self) -> User:
        user = await self._identity.get_current_user(self._context.session_token)
        if user is None:
            raise AuthError()
        return user

    def _exclusive(self) -> asyncio.Lock:
        if self._submit_lock.locked():
            raise RequestInFlightError()
        return self._submit_lock
