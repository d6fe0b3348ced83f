"""Client key lifecycle: issue, verify, revoke, list, rate limit."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from access_guard.auth.context import ClientKeyRecord
from access_guard.auth.key_store import ClientKeyStore
from access_guard.auth.keys import (
    domain_matches,
    generate_client_key,
    hash_client_key,
    is_client_key_format,
)
from access_guard.auth.rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from access_guard.errors import RateLimitExceeded
from access_guard.gateway.routes import prefix_matches
from access_guard.ids import new_id
from access_guard.storage.bounded import bounded

logger = structlog.get_logger()

CLIENT_KEY_ROUTE_CLASS = "client_key"
CLIENT_KEY_WINDOW_MS = 60_000


@dataclass(frozen=True)
class ClientKeyOptions:
    environment: str = "test"
    domains: list[str] = field(default_factory=list)
    rate_limit_per_minute: int | None = None
    allowed_routes: list[str] = field(default_factory=list)
    expires_at: datetime | None = None


@dataclass(frozen=True)
class CreatedKey:
    """Result of key creation. ``plaintext_key`` is never available again."""

    id: uuid.UUID
    plaintext_key: str
    record: ClientKeyRecord


class ClientKeyManager:
    """Tenant-scoped client key operations.

    Plaintext keys exist only in the ``create_key`` return value and in
    the caller's request; everything else works on SHA-256 hashes.
    """

    def __init__(
        self,
        store: ClientKeyStore,
        limiter: SlidingWindowRateLimiter,
        *,
        store_timeout: float = 3.0,
        default_rate_limit: int = 100,
    ) -> None:
        self._store = store
        self._limiter = limiter
        self._timeout = store_timeout
        self._default_rate_limit = default_rate_limit

    async def create_key(
        self,
        tenant_id: uuid.UUID,
        name: str,
        options: ClientKeyOptions | None = None,
    ) -> CreatedKey:
        """Issue a new key for ``tenant_id``.

        Without an explicit rate limit the manager default applies. A
        naive ``expires_at`` is taken to be UTC.

        Raises:
            ValueError: unknown environment or non-positive rate limit.
        """
        options = options or ClientKeyOptions()
        rate_limit = options.rate_limit_per_minute
        if rate_limit is None:
            rate_limit = self._default_rate_limit
        if rate_limit <= 0:
            raise ValueError("rate_limit_per_minute must be positive")
        expires_at = options.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)

        full_key, key_hash, prefix = generate_client_key(options.environment)
        record = ClientKeyRecord(
            id=new_id(),
            tenant_id=tenant_id,
            name=name,
            prefix=prefix,
            key_hash=key_hash,
            rate_limit_per_minute=rate_limit,
            authorized_domains=list(options.domains),
            allowed_routes=list(options.allowed_routes),
            expires_at=expires_at,
            created_at=datetime.now(UTC),
        )
        stored = await bounded(
            self._store.insert(record), self._timeout, operation="client_key_insert"
        )
        logger.info(
            "client_key_created",
            key_id=str(stored.id),
            tenant_id=str(tenant_id),
            prefix=prefix,
        )
        return CreatedKey(id=stored.id, plaintext_key=full_key, record=stored)

    async def verify_key(self, plaintext: str | None) -> ClientKeyRecord | None:
        """Resolve a presented key to its record.

        Returns None for malformed, unknown, revoked or expired keys.
        On success the usage counter and ``last_used_at`` are updated.
        """
        if plaintext is None or not is_client_key_format(plaintext):
            return None

        record = await bounded(
            self._store.get_by_hash(hash_client_key(plaintext)),
            self._timeout,
            operation="client_key_lookup",
        )
        if record is None:
            return None
        if not record.is_active:
            logger.info("client_key_inactive", key_id=str(record.id))
            return None
        if record.expires_at is not None and record.expires_at < datetime.now(UTC):
            logger.info("client_key_expired", key_id=str(record.id))
            return None

        updated = await bounded(
            self._store.record_usage(record.id, datetime.now(UTC)),
            self._timeout,
            operation="client_key_usage",
        )
        return updated or record

    async def revoke(self, key_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
        revoked = await bounded(
            self._store.deactivate(key_id, tenant_id),
            self._timeout,
            operation="client_key_revoke",
        )
        if revoked:
            logger.info("client_key_revoked", key_id=str(key_id), tenant_id=str(tenant_id))
        return revoked

    async def list_keys(self, tenant_id: uuid.UUID) -> list[ClientKeyRecord]:
        return await bounded(
            self._store.list_for_tenant(tenant_id),
            self._timeout,
            operation="client_key_list",
        )

    def enforce_rate_limit(self, record: ClientKeyRecord) -> RateLimitResult:
        """Count one request against the key's per-minute ceiling.

        Raises:
            RateLimitExceeded: ceiling reached inside the current window.
        """
        result = self._limiter.check(
            str(record.id),
            CLIENT_KEY_ROUTE_CLASS,
            record.rate_limit_per_minute,
            CLIENT_KEY_WINDOW_MS,
        )
        if not result.allowed:
            logger.warning("client_key_rate_limited", key_id=str(record.id))
            raise RateLimitExceeded(
                result.retry_after_ms or CLIENT_KEY_WINDOW_MS,
                key=f"{record.id}:{CLIENT_KEY_ROUTE_CLASS}",
            )
        return result

    @staticmethod
    def is_domain_allowed(record: ClientKeyRecord, host: str | None) -> bool:
        """Check a request origin against the key's domain allowlist.

        An empty allowlist permits any origin; a non-empty one requires
        a host.
        """
        if not record.authorized_domains:
            return True
        if not host:
            return False
        return any(domain_matches(host, d) for d in record.authorized_domains)

    @staticmethod
    def is_route_allowed(record: ClientKeyRecord, path: str) -> bool:
        if not record.allowed_routes:
            return True
        return any(prefix_matches(path, route) for route in record.allowed_routes)
