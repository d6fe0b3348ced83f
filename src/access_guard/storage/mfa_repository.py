"""SQL adapter for the MFA store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from access_guard.mfa.store import MFARecord, MFAState
from access_guard.storage.cipher import SecretCipher
from access_guard.storage.orm import UserMFA


class SqlMFAStore:
    """PostgreSQL-backed MFA store.

    Secrets pass through ``cipher`` on every write and read, so the
    ``user_mfa`` table never holds a usable TOTP secret.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: SecretCipher,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher

    def _to_record(self, row: UserMFA) -> MFARecord:
        return MFARecord(
            user_id=row.user_id,
            secret=self._cipher.decrypt(row.secret_encrypted),
            state=MFAState(row.state),
            backup_codes=list(row.backup_codes or []),
            enrolled_at=row.enrolled_at,
            updated_at=row.updated_at,
        )

    async def get(self, user_id: str) -> MFARecord | None:
        async with self._session_factory() as session:
            row = await session.get(UserMFA, user_id)
            return self._to_record(row) if row is not None else None

    async def _upsert(self, values: dict[str, object]) -> None:
        values = {**values, "updated_at": func.now()}
        stmt = insert(UserMFA).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserMFA.user_id],
            set_={k: v for k, v in values.items() if k != "user_id"},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def save_pending(self, user_id: str, secret: str) -> None:
        await self._upsert(
            {
                "user_id": user_id,
                "secret_encrypted": self._cipher.encrypt(secret),
                "state": MFAState.PENDING_VERIFICATION.value,
                "backup_codes": [],
                "enrolled_at": None,
            }
        )

    async def enable(
        self,
        user_id: str,
        secret: str,
        backup_codes: list[str],
        enrolled_at: datetime,
    ) -> None:
        await self._upsert(
            {
                "user_id": user_id,
                "secret_encrypted": self._cipher.encrypt(secret),
                "state": MFAState.ENABLED.value,
                "backup_codes": list(backup_codes),
                "enrolled_at": enrolled_at,
            }
        )

    async def replace_backup_codes(
        self, user_id: str, expected: list[str], remaining: list[str]
    ) -> bool:
        stmt = (
            update(UserMFA)
            .where(
                UserMFA.user_id == user_id,
                UserMFA.state == MFAState.ENABLED.value,
                UserMFA.backup_codes == expected,
            )
            .values(backup_codes=list(remaining))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1  # type: ignore[attr-defined]

    async def disable(self, user_id: str) -> None:
        stmt = (
            update(UserMFA)
            .where(UserMFA.user_id == user_id)
            .values(state=MFAState.DISABLED.value, backup_codes=[])
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
