from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from onescheduler.exceptions import RemoteStoreError
from onescheduler.models.database import TenantRecord, UserTenantRecord
from onescheduler.models.domain import CreateTenantParams, JoinTenantParams
from onescheduler.storage.repositories.tenants import JOIN_ROLE, DatabaseTenantStore
from onescheduler.types import UserRole


@pytest.fixture()
def db_store(async_engine) -> DatabaseTenantStore:
    return DatabaseTenantStore(async_engine)


@pytest.mark.unit
class TestDatabaseTenantStore:
    async def test_create_and_list(self, db_store: DatabaseTenantStore) -> None:
        tenant = await db_store.create_tenant(
            CreateTenantParams(name="Lincoln High", user_id="u1")
        )
        assert tenant.slug == "lincoln-high"

        memberships = await db_store.get_user_tenants("u1")
        assert len(memberships) == 1
        assert memberships[0].role == UserRole.SUPER_ADMIN
        assert memberships[0].tenant.slug == "lincoln-high"

    async def test_name_availability(self, db_store: DatabaseTenantStore) -> None:
        assert await db_store.check_tenant_name_available("Lincoln High")
        await db_store.create_tenant(CreateTenantParams(name="Lincoln High", user_id="u1"))
        assert not await db_store.check_tenant_name_available("lincoln high")

    async def test_duplicate_slug_rejected(self, db_store: DatabaseTenantStore) -> None:
        await db_store.create_tenant(CreateTenantParams(name="Lincoln High", user_id="u1"))
        with pytest.raises(RemoteStoreError) as exc_info:
            await db_store.create_tenant(CreateTenantParams(name="Lincoln High", user_id="u2"))
        assert exc_info.value.reason == "name_taken"
        assert await db_store.get_user_tenants("u2") == []

    async def test_join(self, db_store: DatabaseTenantStore) -> None:
        tenant = await db_store.create_tenant(CreateTenantParams(name="Oak School", user_id="u1"))
        joined = await db_store.join_tenant(
            JoinTenantParams(invite_code=tenant.code, user_id="u2")
        )
        assert joined.id == tenant.id
        memberships = await db_store.get_user_tenants("u2")
        assert [m.role for m in memberships] == [JOIN_ROLE]

    async def test_join_unknown_code(self, db_store: DatabaseTenantStore) -> None:
        with pytest.raises(RemoteStoreError) as exc_info:
            await db_store.join_tenant(JoinTenantParams(invite_code="ZZZZZZZZ", user_id="u2"))
        assert exc_info.value.reason == "invalid_code"

    async def test_join_twice(self, db_store: DatabaseTenantStore) -> None:
        tenant = await db_store.create_tenant(CreateTenantParams(name="Oak School", user_id="u1"))
        with pytest.raises(RemoteStoreError) as exc_info:
            await db_store.join_tenant(JoinTenantParams(invite_code=tenant.code, user_id="u1"))
        assert exc_info.value.reason == "already_member"

    async def test_missing_tables_reported_unavailable(self) -> None:
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        try:
            with pytest.raises(RemoteStoreError) as exc_info:
                await DatabaseTenantStore(engine).get_user_tenants("u1")
        finally:
            await engine.dispose()
        assert exc_info.value.reason == "unavailable"

    async def test_invite_code_collision_retried(self, db_store: DatabaseTenantStore) -> None:
        existing = await db_store.create_tenant(
            CreateTenantParams(name="Oak School", user_id="u1")
        )
        codes = AsyncMock(side_effect=[existing.code, "NEWCODE1"])
        with patch.object(db_store, "_allocate_code", codes):
            tenant = await db_store.create_tenant(
                CreateTenantParams(name="Elm School", user_id="u2")
            )
        assert tenant.code == "NEWCODE1"
        assert codes.await_count == 2
        assert [m.tenant.slug for m in await db_store.get_user_tenants("u2")] == ["elm-school"]

    async def test_invite_code_collisions_exhausted(self, db_store: DatabaseTenantStore) -> None:
        existing = await db_store.create_tenant(
            CreateTenantParams(name="Oak School", user_id="u1")
        )
        with patch.object(db_store, "_allocate_code", AsyncMock(return_value=existing.code)):
            with pytest.raises(RemoteStoreError) as exc_info:
                await db_store.create_tenant(CreateTenantParams(name="Elm School", user_id="u2"))
        assert exc_info.value.reason == "unavailable"
        assert await db_store.check_tenant_name_available("Elm School")

    async def test_same_timestamp_memberships_ordered_by_id(
        self, db_store: DatabaseTenantStore, async_engine
    ) -> None:
        now = datetime.now(UTC).replace(tzinfo=None)
        async with AsyncSession(async_engine) as session:
            for suffix in ("a", "b"):
                session.add(
                    TenantRecord(
                        id=f"t-{suffix}", name=suffix, slug=suffix, code=f"CODE000{suffix}"
                    )
                )
            await session.flush()
            for suffix in ("a", "b"):
                session.add(
                    UserTenantRecord(
                        id=f"m-{suffix}", user_id="u1", tenant_id=f"t-{suffix}", created_at=now
                    )
                )
            await session.commit()

        first = [m.id for m in await db_store.get_user_tenants("u1")]
        assert first == ["m-b", "m-a"]
        assert [m.id for m in await db_store.get_user_tenants("u1")] == first
