"""Client key persistence contract and the in-memory adapter."""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from access_guard.auth.context import ClientKeyRecord


class ClientKeyStore(Protocol):
    """Operations the client key manager needs from durable storage."""

    async def insert(self, record: ClientKeyRecord) -> ClientKeyRecord: ...

    async def get_by_hash(self, key_hash: str) -> ClientKeyRecord | None: ...

    async def record_usage(
        self, key_id: uuid.UUID, used_at: datetime
    ) -> ClientKeyRecord | None:
        """Atomically bump ``total_requests`` and set ``last_used_at``."""
        ...

    async def deactivate(self, key_id: uuid.UUID, tenant_id: uuid.UUID) -> bool: ...

    async def list_for_tenant(self, tenant_id: uuid.UUID) -> list[ClientKeyRecord]: ...


class InMemoryClientKeyStore:
    """Process-local key store for tests and single-node development."""

    def __init__(self) -> None:
        self._by_id: dict[uuid.UUID, ClientKeyRecord] = {}
        self._lock = threading.Lock()

    async def insert(self, record: ClientKeyRecord) -> ClientKeyRecord:
        with self._lock:
            if any(r.key_hash == record.key_hash for r in self._by_id.values()):
                raise ValueError("Duplicate key hash")
            self._by_id[record.id] = record
            return record

    async def get_by_hash(self, key_hash: str) -> ClientKeyRecord | None:
        with self._lock:
            for record in self._by_id.values():
                if record.key_hash == key_hash:
                    return record
            return None

    async def record_usage(
        self, key_id: uuid.UUID, used_at: datetime
    ) -> ClientKeyRecord | None:
        with self._lock:
            record = self._by_id.get(key_id)
            if record is None:
                return None
            updated = replace(
                record,
                total_requests=record.total_requests + 1,
                last_used_at=used_at,
            )
            self._by_id[key_id] = updated
            return updated

    async def deactivate(self, key_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
        with self._lock:
            record = self._by_id.get(key_id)
            if record is None or record.tenant_id != tenant_id:
                return False
            self._by_id[key_id] = replace(record, is_active=False)
            return True

    async def list_for_tenant(self, tenant_id: uuid.UUID) -> list[ClientKeyRecord]:
        with self._lock:
            records = [r for r in self._by_id.values() if r.tenant_id == tenant_id]
        return sorted(
            records,
            key=lambda r: (r.created_at is not None, r.created_at or 0),
            reverse=True,
        )
