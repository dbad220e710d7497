"""Tenant store: tenants, memberships and the atomic create/join procedures."""

from __future__ import annotations

import itertools
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from onescheduler.exceptions import RemoteStoreError
from onescheduler.models.database import TenantRecord, UserTenantRecord
from onescheduler.models.domain import (
    CreateTenantParams,
    JoinTenantParams,
    Tenant,
    UserTenant,
)
from onescheduler.tenancy.slugs import generate_invite_code, slugify
from onescheduler.types import UserRole

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Role granted to users joining by invite code
JOIN_ROLE = UserRole.STAFF

# Inserts retried when a concurrent create takes the same invite code
CREATE_ATTEMPTS = 3


class TenantStore(ABC):
    """Remote store of tenants and memberships."""

    @abstractmethod
    async def get_user_tenants(self, user_id: str) -> list[UserTenant]:
        """Memberships of a user with their tenants, most recently created first."""

    @abstractmethod
    async def check_tenant_name_available(self, name: str) -> bool:
        """True when no tenant already uses the slug derived from ``name``."""

    @abstractmethod
    async def create_tenant(self, params: CreateTenantParams) -> Tenant:
        """Create a tenant and make its creator super_admin in one step."""

    @abstractmethod
    async def join_tenant(self, params: JoinTenantParams) -> Tenant:
        """Add the caller to the tenant owning the invite code."""


class InMemoryTenantStore(TenantStore):
    """In-memory tenant store for dev/testing without a database."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}
        self._memberships: list[tuple[int, UserTenant]] = []
        self._seq = itertools.count()

    async def get_user_tenants(self, user_id: str) -> list[UserTenant]:
        """Memberships of a user, most recently created first."""
        rows = [(seq, m) for seq, m in self._memberships if m.user_id == user_id]
        rows.sort(key=lambda r: (r[1].created_at, r[0]), reverse=True)
        return [m.model_copy(update={"tenant": self._tenants[m.tenant_id]}) for _, m in rows]

    async def check_tenant_name_available(self, name: str) -> bool:
        slug = slugify(name)
        return not any(t.slug == slug for t in self._tenants.values())

    async def create_tenant(self, params: CreateTenantParams) -> Tenant:
        """Create a tenant and grant its creator super_admin, all or nothing."""
        slug = params.slug or slugify(params.name)
        if any(t.slug == slug for t in self._tenants.values()):
            raise RemoteStoreError("name_taken", f"Slug already exists: {slug}")

        codes = {t.code for t in self._tenants.values()}
        code = generate_invite_code()
        while code in codes:
            code = generate_invite_code()

        now = datetime.now(UTC)
        tenant = Tenant(
            id=str(uuid.uuid4()),
            name=params.name,
            slug=slug,
            code=code,
            created_at=now,
            updated_at=now,
        )
        self._tenants[tenant.id] = tenant
        self._add_membership(params.user_id, tenant, UserRole.SUPER_ADMIN)
        logger.info("tenant_created", tenant_id=tenant.id, slug=slug, user_id=params.user_id)
        return tenant

    async def join_tenant(self, params: JoinTenantParams) -> Tenant:
        """Validate an invite code and add the caller as a member."""
        tenant = next((t for t in self._tenants.values() if t.code == params.invite_code), None)
        if tenant is None:
            raise RemoteStoreError("invalid_code", "Invite code not found")
        if any(
            m.user_id == params.user_id and m.tenant_id == tenant.id for _, m in self._memberships
        ):
            raise RemoteStoreError("already_member", "User is already a member of this tenant")

        self._add_membership(params.user_id, tenant, JOIN_ROLE)
        logger.info("tenant_joined", tenant_id=tenant.id, user_id=params.user_id)
        return tenant

    def _add_membership(self, user_id: str, tenant: Tenant, role: UserRole) -> None:
        now = datetime.now(UTC)
        membership = UserTenant(
            id=str(uuid.uuid4()),
            user_id=user_id,
            tenant_id=tenant.id,
            role=role,
            created_at=now,
            updated_at=now,
            tenant=tenant,
        )
        self._memberships.append((next(self._seq), membership))


class DatabaseTenantStore(TenantStore):
    """PostgreSQL-backed tenant store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_user_tenants(self, user_id: str) -> list[UserTenant]:
        try:
            async with AsyncSession(self._engine) as session:
                stmt = (
                    select(UserTenantRecord, TenantRecord)
                    .join(TenantRecord, col(TenantRecord.id) == col(UserTenantRecord.tenant_id))
                    .where(col(UserTenantRecord.user_id) == user_id)
                    .order_by(
                        col(UserTenantRecord.created_at).desc(),
                        col(UserTenantRecord.id).desc(),
                    )
                )
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise RemoteStoreError("unavailable", str(e)) from e
        return [_to_user_tenant(membership, tenant) for membership, tenant in rows]

    async def check_tenant_name_available(self, name: str) -> bool:
        try:
            async with AsyncSession(self._engine) as session:
                return await self._get_by(session, "slug", slugify(name)) is None
        except SQLAlchemyError as e:
            raise RemoteStoreError("unavailable", str(e)) from e

    async def create_tenant(self, params: CreateTenantParams) -> Tenant:
        slug = params.slug or slugify(params.name)
        try:
            for attempt in range(1, CREATE_ATTEMPTS + 1):
                try:
                    return await self._insert_tenant(params, slug)
                except IntegrityError as e:
                    if await self._slug_taken(slug):
                        raise RemoteStoreError(
                            "name_taken", f"Slug already exists: {slug}"
                        ) from e
                    logger.warning("invite_code_collision", slug=slug, attempt=attempt)
        except SQLAlchemyError as e:
            raise RemoteStoreError("unavailable", str(e)) from e
        msg = f"Could not allocate a unique invite code for {slug}"
        raise RemoteStoreError("unavailable", msg)

    async def _insert_tenant(self, params: CreateTenantParams, slug: str) -> Tenant:
        async with AsyncSession(self._engine) as session:
            if await self._get_by(session, "slug", slug) is not None:
                raise RemoteStoreError("name_taken", f"Slug already exists: {slug}")

            code = await self._allocate_code(session)
            tenant = TenantRecord(name=params.name, slug=slug, code=code)
            session.add(tenant)
            await session.flush()  # populate tenant.id without committing
            session.add(
                UserTenantRecord(
                    user_id=params.user_id,
                    tenant_id=tenant.id,
                    role=UserRole.SUPER_ADMIN.value,
                )
            )
            await session.commit()
            await session.refresh(tenant)
            logger.info("tenant_created", tenant_id=tenant.id, slug=slug, user_id=params.user_id)
            return _to_tenant(tenant)

    async def _allocate_code(self, session: AsyncSession) -> str:
        code = generate_invite_code()
        while await self._get_by(session, "code", code) is not None:
            code = generate_invite_code()
        return code

    async def _slug_taken(self, slug: str) -> bool:
        async with AsyncSession(self._engine) as session:
            return await self._get_by(session, "slug", slug) is not None

    async def join_tenant(self, params: JoinTenantParams) -> Tenant:
        try:
            async with AsyncSession(self._engine) as session:
                tenant = await self._get_by(session, "code", params.invite_code)
                if tenant is None:
                    raise RemoteStoreError("invalid_code", "Invite code not found")

                stmt = select(UserTenantRecord).where(
                    col(UserTenantRecord.user_id) == params.user_id,
                    col(UserTenantRecord.tenant_id) == tenant.id,
                )
                existing = (await session.execute(stmt)).scalars().first()
                if existing is not None:
                    raise RemoteStoreError(
                        "already_member", "User is already a member of this tenant"
                    )

                session.add(
                    UserTenantRecord(
                        user_id=params.user_id, tenant_id=tenant.id, role=JOIN_ROLE.value
                    )
                )
                await session.commit()
                await session.refresh(tenant)
                logger.info("tenant_joined", tenant_id=tenant.id, user_id=params.user_id)
                return _to_tenant(tenant)
        except IntegrityError as e:
            raise RemoteStoreError("already_member", "User is already a member") from e
        except SQLAlchemyError as e:
            raise RemoteStoreError("unavailable", str(e)) from e

    @staticmethod
    async def _get_by(session: AsyncSession, field: str, value: Any) -> TenantRecord | None:
        stmt = select(TenantRecord).where(col(getattr(TenantRecord, field)) == value)
        result = await session.execute(stmt)
        return result.scalars().first()


def _to_tenant(record: TenantRecord) -> Tenant:
    return Tenant(
        id=record.id,
        name=record.name,
        slug=record.slug,
        code=record.code,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_user_tenant(membership: UserTenantRecord, tenant: TenantRecord) -> UserTenant:
    return UserTenant(
        id=membership.id,
        user_id=membership.user_id,
        tenant_id=membership.tenant_id,
        role=UserRole(membership.role),
        created_at=membership.created_at,
        updated_at=membership.updated_at,
        tenant=_to_tenant(tenant),
    )
