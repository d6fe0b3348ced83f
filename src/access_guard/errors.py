"""Domain-specific exceptions for access-guard."""

from __future__ import annotations


class AccessGuardError(Exception):
    """Base class for every access-guard error."""


class InvalidEncoding(AccessGuardError, ValueError):
    """Raised when a base32 string contains characters outside the alphabet."""


class InvalidVerificationToken(AccessGuardError):
    """Submitted TOTP or backup code did not verify."""


class MFAAlreadyEnabled(AccessGuardError):
    """Enrollment requested for a user whose MFA is already enabled."""


class KeyNotFound(AccessGuardError):
    """No client key matches the submitted value."""


class KeyExpired(AccessGuardError):
    """Client key is past its ``expires_at``."""


class KeyInactive(AccessGuardError):
    """Client key has been revoked."""


class StoreUnavailable(AccessGuardError):
    """Backing store timed out or failed. Always fail closed."""


class RouteTableError(AccessGuardError, ValueError):
    """Gateway route table failed startup validation."""


class RateLimitExceeded(AccessGuardError):
    """Sliding window exhausted for an identity and route class."""

    def __init__(self, retry_after_ms: int, *, key: str | None = None) -> None:
        self.retry_after_ms = retry_after_ms
        self.key = key
        super().__init__(f"Rate limit exceeded, retry after {retry_after_ms} ms")

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds for the ``Retry-After`` header (never below 1)."""
        return max(1, -(-self.retry_after_ms // 1000))


class GateDenied(AccessGuardError):
    """Base class for request gateway denials."""

    event: str = "access_denied"


class SessionAbsent(GateDenied):
    """Protected route requested without a resolvable session."""

    event = "unauthorized_access_attempt"


class SessionStale(GateDenied):
    """Session too old for a sensitive route."""

    event = "stale_session_sensitive_access"


class RoleInsufficient(GateDenied):
    """Session role ranks below the route's required role."""

    event = "role_access_denied"


class TenantAssociationMissing(GateDenied):
    """Session has no associated tenant on a tenant-only route."""

    event = "access_without_workshop"
