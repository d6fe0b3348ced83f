"""Session and client-key value objects read during request processing."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from access_guard.auth.roles import Role


@dataclass(frozen=True)
class SessionDescriptor:
    """Authenticated session, resolved by the identity collaborator.

    Read-only for this package: evaluated for RBAC and freshness, never
    mutated.
    """

    user_id: str
    role: Role
    issued_at: datetime | None
    user_email: str | None = None
    tenant_id: str | None = None
    tenant_name: str | None = None

    @property
    def has_tenant(self) -> bool:
        return bool(self.tenant_id)


@dataclass(frozen=True)
class ClientKeyRecord:
    """Stored client key metadata. Never carries the plaintext key."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    prefix: str
    key_hash: str
    rate_limit_per_minute: int
    is_active: bool = True
    authorized_domains: list[str] = field(default_factory=list)
    allowed_routes: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    total_requests: int = 0
    last_used_at: datetime | None = None
    created_at: datetime | None = None
