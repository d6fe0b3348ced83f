"""MFA persistence contract and the in-memory adapter."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol


class MFAState(StrEnum):
    """Per-user MFA lifecycle."""

    NOT_ENROLLED = "not_enrolled"
    PENDING_VERIFICATION = "pending_verification"
    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass(frozen=True)
class MFARecord:
    """Stored MFA configuration for one user.

    ``secret`` is the plaintext base32 value as seen by the manager;
    at-rest encryption is the adapter's job.
    """

    user_id: str
    secret: str
    state: MFAState
    backup_codes: list[str] = field(default_factory=list)
    enrolled_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def enabled(self) -> bool:
        return self.state == MFAState.ENABLED


class MFAStore(Protocol):
    """Operations the MFA manager needs from durable storage."""

    async def get(self, user_id: str) -> MFARecord | None: ...

    async def save_pending(self, user_id: str, secret: str) -> None: ...

    async def enable(
        self,
        user_id: str,
        secret: str,
        backup_codes: list[str],
        enrolled_at: datetime,
    ) -> None: ...

    async def replace_backup_codes(
        self, user_id: str, expected: list[str], remaining: list[str]
    ) -> bool:
        """Swap the backup-code set only if it still equals ``expected``."""
        ...

    async def disable(self, user_id: str) -> None: ...


class InMemoryMFAStore:
    """Process-local MFA store for tests and single-node development.

    Guarded by a threading lock that is never held across an await.
    """

    def __init__(self) -> None:
        self._records: dict[str, MFARecord] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: str) -> MFARecord | None:
        with self._lock:
            record = self._records.get(user_id)
            return copy.deepcopy(record) if record is not None else None

    async def save_pending(self, user_id: str, secret: str) -> None:
        with self._lock:
            self._records[user_id] = MFARecord(
                user_id=user_id,
                secret=secret,
                state=MFAState.PENDING_VERIFICATION,
                updated_at=datetime.now(UTC),
            )

    async def enable(
        self,
        user_id: str,
        secret: str,
        backup_codes: list[str],
        enrolled_at: datetime,
    ) -> None:
        with self._lock:
            self._records[user_id] = MFARecord(
                user_id=user_id,
                secret=secret,
                state=MFAState.ENABLED,
                backup_codes=list(backup_codes),
                enrolled_at=enrolled_at,
                updated_at=enrolled_at,
            )

    async def replace_backup_codes(
        self, user_id: str, expected: list[str], remaining: list[str]
    ) -> bool:
        with self._lock:
            record = self._records.get(user_id)
            if record is None or record.backup_codes != expected:
                return False
            self._records[user_id] = replace(
                record,
                backup_codes=list(remaining),
                updated_at=datetime.now(UTC),
            )
            return True

    async def disable(self, user_id: str) -> None:
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                return
            self._records[user_id] = replace(
                record,
                state=MFAState.DISABLED,
                backup_codes=[],
                updated_at=datetime.now(UTC),
            )
