"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from pathlib import Path

import structlog
from fastapi import Depends, Request

from onescheduler.config.settings import get_settings
from onescheduler.identity.provider import IdentityProvider
from onescheduler.storage.preferences import (
    FilePreferenceStore,
    InMemoryPreferenceStore,
    PreferenceStore,
)
from onescheduler.storage.repositories.tenants import InMemoryTenantStore, TenantStore
from onescheduler.tenancy.context import TenantContext
from onescheduler.tenancy.flows import TenantFlows
from onescheduler.tenancy.registry import SessionScope, TenantContextRegistry
from onescheduler.web.gate import require_user

logger = structlog.get_logger(__name__)


def _create_identity() -> IdentityProvider:
    settings = get_settings()
    return IdentityProvider(
        settings.secret_key,
        max_age=settings.session_max_age,
        identity_url=settings.identity_url,
        redirect_url=settings.redirect_url,
        oauth_providers=settings.oauth_providers,
        password_rounds=settings.password_hash_rounds,
    )


def _create_tenant_store() -> TenantStore:
    """Create the appropriate tenant store based on settings."""
    settings = get_settings()
    if settings.use_database:
        from onescheduler.storage.database import get_engine
        from onescheduler.storage.repositories.tenants import DatabaseTenantStore

        return DatabaseTenantStore(get_engine())
    return InMemoryTenantStore()


def _create_preference_store() -> PreferenceStore:
    settings = get_settings()
    if settings.preferences_path:
        return FilePreferenceStore(Path(settings.preferences_path))
    return InMemoryPreferenceStore()


def _create_registry() -> TenantContextRegistry:
    settings = get_settings()
    return TenantContextRegistry(
        identity,
        tenant_store,
        preference_store,
        redirect_delay_seconds=settings.setup_redirect_delay_seconds,
        name_check_interval=settings.name_check_min_interval_seconds,
    )


# Shared collaborators
identity = _create_identity()
tenant_store = _create_tenant_store()
preference_store = _create_preference_store()
registry = _create_registry()


def get_device_id(request: Request) -> str:
    """Per-browser id assigned by DeviceIDMiddleware."""
    return getattr(request.state, "device_id", "") or "anonymous"


def get_session_token(request: Request) -> str:
    return request.cookies.get(get_settings().session_cookie, "")


async def get_scope(
    request: Request,
    _user: object = Depends(require_user),
) -> SessionScope:
    """Mount the session's tenant context, loading it on first use."""
    return await registry.mount_loaded(get_session_token(request), get_device_id(request))


async def get_tenant_context(scope: SessionScope = Depends(get_scope)) -> TenantContext:
    return scope.context


async def get_page_context(
    request: Request,
    _user: object = Depends(require_user),
) -> TenantContext:
    """Tenant context for a page navigation, with memberships re-fetched."""
    scope = await registry.mount_loaded(
        get_session_token(request), get_device_id(request), reload=True
    )
    return scope.context


async def get_flows(scope: SessionScope = Depends(get_scope)) -> TenantFlows:
    return scope.flows
