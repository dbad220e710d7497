"""Inter-module data contracts (not persisted directly)."""

from datetime import datetime

from pydantic import BaseModel

from onescheduler.types import UserRole


class User(BaseModel):
    id: str
    email: str


class Tenant(BaseModel):
    id: str
    name: str
    slug: str  # URL-friendly identifier for routing
    code: str  # invite code for joining
    created_at: datetime
    updated_at: datetime


class UserTenant(BaseModel):
    """A user's membership in one tenant, with the tenant embedded."""

    id: str
    user_id: str
    tenant_id: str
    role: UserRole
    created_at: datetime
    updated_at: datetime
    tenant: Tenant


class CreateTenantParams(BaseModel):
    name: str
    user_id: str
    slug: str | None = None  # derived from name when omitted


class JoinTenantParams(BaseModel):
    invite_code: str
    user_id: str


class NameCheck(BaseModel):
    """Outcome of a name availability check."""

    name: str
    available: bool = False
    superseded: bool = False  # a newer check replaced this one
    error: str | None = None


class ContextSnapshot(BaseModel):
    """Read-only view of a session's tenant context."""

    current_tenant: Tenant | None = None
    current_role: UserRole | None = None
    memberships: list[UserTenant] = []
    loading: bool = False
    error: str | None = None
