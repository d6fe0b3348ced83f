"""SQL adapter for the client key store."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from access_guard.auth.context import ClientKeyRecord
from access_guard.storage.orm import ClientKey


def _to_record(row: ClientKey) -> ClientKeyRecord:
    return ClientKeyRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        prefix=row.prefix,
        key_hash=row.key_hash,
        rate_limit_per_minute=row.rate_limit_per_minute,
        is_active=row.is_active,
        authorized_domains=list(row.authorized_domains or []),
        allowed_routes=list(row.allowed_routes or []),
        expires_at=row.expires_at,
        total_requests=row.total_requests,
        last_used_at=row.last_used_at,
        created_at=row.created_at,
    )


class SqlClientKeyStore:
    """PostgreSQL-backed client key store.

    All tenant-facing writes filter by ``tenant_id`` to ensure one tenant
    cannot touch another tenant's keys.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, record: ClientKeyRecord) -> ClientKeyRecord:
        row = ClientKey(
            id=record.id,
            tenant_id=record.tenant_id,
            name=record.name,
            prefix=record.prefix,
            key_hash=record.key_hash,
            authorized_domains=list(record.authorized_domains),
            allowed_routes=list(record.allowed_routes),
            rate_limit_per_minute=record.rate_limit_per_minute,
            is_active=record.is_active,
            expires_at=record.expires_at,
            total_requests=0,
            created_at=record.created_at,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.flush()
            await session.refresh(row)
            await session.commit()
            return _to_record(row)

    async def get_by_hash(self, key_hash: str) -> ClientKeyRecord | None:
        async with self._session_factory() as session:
            row = (
                await session.execute(select(ClientKey).where(ClientKey.key_hash == key_hash))
            ).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    async def record_usage(
        self, key_id: uuid.UUID, used_at: datetime
    ) -> ClientKeyRecord | None:
        stmt = (
            update(ClientKey)
            .where(ClientKey.id == key_id)
            .values(total_requests=ClientKey.total_requests + 1, last_used_at=used_at)
            .returning(ClientKey)
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return _to_record(row) if row is not None else None

    async def deactivate(self, key_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
        stmt = (
            update(ClientKey)
            .where(ClientKey.id == key_id, ClientKey.tenant_id == tenant_id)
            .values(is_active=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1  # type: ignore[attr-defined]

    async def list_for_tenant(self, tenant_id: uuid.UUID) -> list[ClientKeyRecord]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(ClientKey)
                    .where(ClientKey.tenant_id == tenant_id)
                    .order_by(ClientKey.created_at.desc())
                )
            ).scalars()
            return [_to_record(row) for row in rows]
