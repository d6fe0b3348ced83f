"""Shared fixtures for integration tests requiring live infrastructure.

The database must be migrated first: ``uv run alembic upgrade head``.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from access_guard.config import get_settings
from access_guard.storage.cipher import FernetCipher
from access_guard.storage.orm import ClientKey, Tenant, UserMFA

# ── Engine (module-scoped, shared across test module) ──────────────


@pytest.fixture(scope="module")
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine from settings (module-scoped)."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture()
def cipher() -> FernetCipher:
    return FernetCipher(Fernet.generate_key())


# ── Committed seeds (real commit + DELETE cleanup) ─────────────────


@pytest.fixture()
async def committed_tenant(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[uuid.UUID]:
    """Create a Tenant with a real commit; delete it and its keys afterwards."""
    async with session_factory() as session:
        tenant = Tenant(name=f"test-tenant-{uuid.uuid4().hex[:8]}")
        session.add(tenant)
        await session.commit()
        tenant_id = tenant.id

    yield tenant_id

    async with session_factory() as session:
        await session.execute(
            ClientKey.__table__.delete().where(ClientKey.tenant_id == tenant_id)
        )
        await session.execute(Tenant.__table__.delete().where(Tenant.id == tenant_id))
        await session.commit()


@pytest.fixture()
async def mfa_user(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[str]:
    """A unique user id whose ``user_mfa`` row is removed after the test."""
    user_id = f"it-user-{uuid.uuid4().hex[:12]}"
    yield user_id
    async with session_factory() as session:
        await session.execute(UserMFA.__table__.delete().where(UserMFA.user_id == user_id))
        await session.commit()
