"""Shared test fixtures."""

from __future__ import annotations

import os
import uuid
from collections.abc import Awaitable, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

import onescheduler.models.database  # noqa: F401 - registers tables
from onescheduler.identity.provider import IdentityProvider
from onescheduler.storage.preferences import InMemoryPreferenceStore, TenantPreference
from onescheduler.storage.repositories.tenants import InMemoryTenantStore
from onescheduler.web.app import create_app

PASSWORD = "Secret123"


def unique_email() -> str:
    return f"user-{uuid.uuid4().hex[:10]}@example.com"


@pytest.fixture()
def app():
    """Create a fresh app instance for tests."""
    return create_app()


@pytest.fixture()
async def client(app):
    """Unauthenticated client. HTTPS so secure cookies round-trip."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as c:
        yield c


@pytest.fixture()
def signup(client: AsyncClient) -> Callable[..., Awaitable[str]]:
    """Register (and thereby sign in) a fresh user on ``client``."""

    async def _signup(email: str | None = None) -> str:
        email = email or unique_email()
        resp = await client.post(
            "/api/auth/register",
            json={"email": email, "password": PASSWORD, "confirm_password": PASSWORD},
        )
        assert resp.status_code == 201, resp.text
        return email

    return _signup


@pytest.fixture()
async def authed_client(client: AsyncClient, signup) -> AsyncClient:
    """A client signed in as a brand-new user with no schools."""
    await signup()
    return client


@pytest.fixture()
def identity() -> IdentityProvider:
    return IdentityProvider(secret_key="test-secret", password_rounds=4)


@pytest.fixture()
def store() -> InMemoryTenantStore:
    return InMemoryTenantStore()


@pytest.fixture()
def preferences() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest.fixture()
def preference(preferences: InMemoryPreferenceStore) -> TenantPreference:
    return TenantPreference(preferences, "device-1")


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()
