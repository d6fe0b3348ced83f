"""MFA enrollment, login verification and disable orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from access_guard.auth.rate_limiter import SlidingWindowRateLimiter
from access_guard.errors import (
    InvalidVerificationToken,
    MFAAlreadyEnabled,
    RateLimitExceeded,
)
from access_guard.mfa.backup_codes import consume_backup_code, generate_backup_codes
from access_guard.mfa.store import MFARecord, MFAState, MFAStore
from access_guard.mfa.totp import TOTPEngine
from access_guard.storage.bounded import bounded

logger = structlog.get_logger()


@dataclass(frozen=True)
class EnrollmentStart:
    """Secret and provisioning URI, shown to the user exactly once."""

    secret: str
    provisioning_uri: str


@dataclass(frozen=True)
class MFAStatus:
    state: MFAState
    enrolled_at: datetime | None
    backup_codes_remaining: int

    @property
    def enabled(self) -> bool:
        return self.state == MFAState.ENABLED


def _mask(token: str) -> str:
    """Keep two leading characters of a submitted token for audit logs."""
    return token[:2] + "****"


class MFAManager:
    """Drive the per-user MFA state machine.

    ``not_enrolled -> pending_verification -> enabled -> disabled``

    Failed guesses are reported as ``False`` (or
    ``InvalidVerificationToken`` where a caller must be told the action
    did not happen); they never reveal whether a user is enrolled.
    Only store failures surface as ``StoreUnavailable``.
    """

    ATTEMPT_ROUTE_CLASS = "mfa"

    def __init__(
        self,
        store: MFAStore,
        totp: TOTPEngine,
        *,
        issuer: str = "CarBot",
        backup_code_count: int = 10,
        store_timeout: float = 3.0,
        limiter: SlidingWindowRateLimiter | None = None,
        attempt_limit: int = 5,
        attempt_window_ms: int = 300_000,
    ) -> None:
        self._store = store
        self._totp = totp
        self._issuer = issuer
        self._backup_code_count = backup_code_count
        self._timeout = store_timeout
        self._limiter = limiter
        self._attempt_limit = attempt_limit
        self._attempt_window_ms = attempt_window_ms

    async def _load(self, user_id: str) -> MFARecord | None:
        return await bounded(
            self._store.get(user_id), self._timeout, operation="mfa_get"
        )

    def _check_attempts(self, user_id: str) -> None:
        if self._limiter is None:
            return
        result = self._limiter.check(
            user_id,
            self.ATTEMPT_ROUTE_CLASS,
            self._attempt_limit,
            self._attempt_window_ms,
        )
        if not result.allowed:
            logger.warning("mfa_attempts_exhausted", user_id=user_id)
            raise RateLimitExceeded(
                result.retry_after_ms or self._attempt_window_ms,
                key=f"{self.ATTEMPT_ROUTE_CLASS}:{user_id}",
            )

    async def begin_enrollment(self, user_id: str, account_label: str) -> EnrollmentStart:
        """Generate a pending secret and its provisioning URI.

        Raises:
            MFAAlreadyEnabled: the user must disable MFA first.
        """
        record = await self._load(user_id)
        if record is not None and record.enabled:
            raise MFAAlreadyEnabled(f"MFA already enabled for user {user_id}")

        secret = self._totp.generate_secret()
        await bounded(
            self._store.save_pending(user_id, secret),
            self._timeout,
            operation="mfa_save_pending",
        )
        logger.info("mfa_setup_initiated", user_id=user_id)
        return EnrollmentStart(
            secret=secret,
            provisioning_uri=self._totp.provisioning_uri(
                secret, account_label, self._issuer
            ),
        )

    async def pending_secret(self, user_id: str) -> str | None:
        """Secret awaiting confirmation, or None outside that state."""
        record = await self._load(user_id)
        if record is None or record.state != MFAState.PENDING_VERIFICATION:
            return None
        return record.secret

    async def confirm_enrollment(
        self, user_id: str, secret: str, submitted_code: str
    ) -> list[str]:
        """Enable MFA once the user proves possession of ``secret``.

        Returns:
            Fresh plaintext backup codes. They are not shown again.

        Raises:
            InvalidVerificationToken: code did not verify; nothing persisted.
        """
        if not self._totp.verify_code(submitted_code, secret):
            logger.warning(
                "mfa_enrollment_failed", user_id=user_id, attempt=_mask(submitted_code)
            )
            raise InvalidVerificationToken("Invalid verification token")

        backup_codes = generate_backup_codes(self._backup_code_count)
        await bounded(
            self._store.enable(user_id, secret, backup_codes, datetime.now(UTC)),
            self._timeout,
            operation="mfa_enable",
        )
        logger.info("mfa_enabled", user_id=user_id)
        return backup_codes

    async def verify_login(self, user_id: str, submitted_token: str) -> bool:
        """Check a TOTP code or backup code for an enabled user.

        A consumed backup code is removed from the store before this
        returns True. If another request consumed the same code first the
        compare-and-swap fails and this attempt is rejected.

        Raises:
            RateLimitExceeded: too many attempts for this user.
        """
        self._check_attempts(user_id)
        record = await self._load(user_id)
        if record is None or not record.enabled:
            return False

        matched, remaining = consume_backup_code(record.backup_codes, submitted_token)
        if matched:
            swapped = await bounded(
                self._store.replace_backup_codes(
                    user_id, record.backup_codes, remaining
                ),
                self._timeout,
                operation="mfa_consume_backup_code",
            )
            if swapped:
                logger.info(
                    "mfa_backup_code_used",
                    user_id=user_id,
                    backup_codes_remaining=len(remaining),
                )
                return True
            logger.warning("mfa_backup_code_race", user_id=user_id)
            return False

        if self._totp.verify_code(submitted_token, record.secret):
            return True

        logger.warning(
            "mfa_verification_failed", user_id=user_id, attempt=_mask(submitted_token)
        )
        return False

    async def disable(self, user_id: str, submitted_token: str) -> bool:
        """Turn MFA off after a successful verification.

        Raises:
            InvalidVerificationToken: token did not verify.
        """
        if not await self.verify_login(user_id, submitted_token):
            raise InvalidVerificationToken("Invalid verification token")
        await bounded(
            self._store.disable(user_id), self._timeout, operation="mfa_disable"
        )
        logger.info("mfa_disabled", user_id=user_id)
        return True

    async def regenerate_backup_codes(
        self, user_id: str, submitted_token: str
    ) -> list[str]:
        """Replace the whole backup-code set after verification.

        Raises:
            InvalidVerificationToken: token did not verify.
        """
        if not await self.verify_login(user_id, submitted_token):
            raise InvalidVerificationToken("Invalid verification token")
        record = await self._load(user_id)
        if record is None or not record.enabled:
            raise InvalidVerificationToken("Invalid verification token")

        codes = generate_backup_codes(self._backup_code_count)
        swapped = await bounded(
            self._store.replace_backup_codes(user_id, record.backup_codes, codes),
            self._timeout,
            operation="mfa_regenerate_backup_codes",
        )
        if not swapped:
            raise InvalidVerificationToken("Backup codes changed concurrently")
        logger.info("mfa_backup_codes_regenerated", user_id=user_id)
        return codes

    async def is_enabled(self, user_id: str) -> bool:
        record = await self._load(user_id)
        return record is not None and record.enabled

    async def status(self, user_id: str) -> MFAStatus:
        record = await self._load(user_id)
        if record is None:
            return MFAStatus(
                state=MFAState.NOT_ENROLLED, enrolled_at=None, backup_codes_remaining=0
            )
        return MFAStatus(
            state=record.state,
            enrolled_at=record.enrolled_at,
            backup_codes_remaining=len(record.backup_codes),
        )
