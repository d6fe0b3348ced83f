"""Tests for the MFA enrollment and verification flow."""

import asyncio
import time
from datetime import UTC, datetime

import pytest
from structlog.testing import capture_logs

from access_guard.auth.rate_limiter import SlidingWindowRateLimiter
from access_guard.errors import (
    InvalidVerificationToken,
    MFAAlreadyEnabled,
    RateLimitExceeded,
    StoreUnavailable,
)
from access_guard.mfa.manager import MFAManager
from access_guard.mfa.store import InMemoryMFAStore, MFARecord, MFAState
from access_guard.mfa.totp import TOTPEngine

USER = "user-42"


def _wrong_code(engine: TOTPEngine, secret: str) -> str:
    """A six-digit code that is not valid anywhere in the current window."""
    now = time.time()
    valid = {
        engine.generate_code(secret, at=now + step * engine.period)
        for step in range(-2, 3)
    }
    for candidate in ("000000", "111111", "222222", "333333", "444444", "555555"):
        if candidate not in valid:
            return candidate
    raise AssertionError("unreachable")


class SlowMFAStore(InMemoryMFAStore):
    async def get(self, user_id: str) -> MFARecord | None:
        await asyncio.sleep(1)
        return await super().get(user_id)


@pytest.fixture()
def store() -> InMemoryMFAStore:
    return InMemoryMFAStore()


@pytest.fixture()
def totp() -> TOTPEngine:
    return TOTPEngine()


@pytest.fixture()
def manager(store: InMemoryMFAStore, totp: TOTPEngine) -> MFAManager:
    return MFAManager(store, totp)


async def _enroll(manager: MFAManager, totp: TOTPEngine) -> tuple[str, list[str]]:
    start = await manager.begin_enrollment(USER, "owner@garage.example")
    codes = await manager.confirm_enrollment(
        USER, start.secret, totp.generate_code(start.secret)
    )
    return start.secret, codes


class TestEnrollment:
    async def test_begin_returns_secret_and_uri(self, manager: MFAManager) -> None:
        start = await manager.begin_enrollment(USER, "owner@garage.example")
        assert len(start.secret) == 32
        assert start.provisioning_uri.startswith("otpauth://totp/CarBot:")
        assert f"secret={start.secret}" in start.provisioning_uri
        assert await manager.pending_secret(USER) == start.secret
        assert (await manager.status(USER)).state == MFAState.PENDING_VERIFICATION

    async def test_confirm_enables_and_issues_backup_codes(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        _secret, codes = await _enroll(manager, totp)
        assert len(codes) == 10
        assert await manager.is_enabled(USER) is True
        status = await manager.status(USER)
        assert status.enabled is True
        assert status.backup_codes_remaining == 10
        assert status.enrolled_at is not None
        assert await manager.pending_secret(USER) is None

    async def test_confirm_with_wrong_code_persists_nothing(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        start = await manager.begin_enrollment(USER, "owner@garage.example")
        with pytest.raises(InvalidVerificationToken):
            await manager.confirm_enrollment(
                USER, start.secret, _wrong_code(totp, start.secret)
            )
        assert await manager.is_enabled(USER) is False
        assert await manager.pending_secret(USER) == start.secret

    async def test_begin_when_enabled_raises(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        await _enroll(manager, totp)
        with pytest.raises(MFAAlreadyEnabled):
            await manager.begin_enrollment(USER, "owner@garage.example")

    async def test_restart_enrollment_replaces_pending_secret(
        self, manager: MFAManager
    ) -> None:
        first = await manager.begin_enrollment(USER, "a")
        second = await manager.begin_enrollment(USER, "a")
        assert first.secret != second.secret
        assert await manager.pending_secret(USER) == second.secret

    async def test_status_for_unknown_user(self, manager: MFAManager) -> None:
        status = await manager.status("nobody")
        assert status.state == MFAState.NOT_ENROLLED
        assert status.enabled is False
        assert status.backup_codes_remaining == 0


class TestVerifyLogin:
    async def test_totp_code_accepted(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, _codes = await _enroll(manager, totp)
        assert await manager.verify_login(USER, totp.generate_code(secret)) is True

    async def test_backup_code_single_use(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        """A backup code works once and shrinks the set by exactly one."""
        _secret, codes = await _enroll(manager, totp)

        assert await manager.verify_login(USER, codes[0]) is True
        assert (await manager.status(USER)).backup_codes_remaining == 9

        assert await manager.verify_login(USER, codes[0]) is False
        assert (await manager.status(USER)).backup_codes_remaining == 9

    async def test_concurrent_backup_code_use_succeeds_once(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        _secret, codes = await _enroll(manager, totp)
        results = await asyncio.gather(
            manager.verify_login(USER, codes[3]),
            manager.verify_login(USER, codes[3]),
        )
        assert sorted(results) == [False, True]
        assert (await manager.status(USER)).backup_codes_remaining == 9

    async def test_wrong_code_rejected(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, _codes = await _enroll(manager, totp)
        assert await manager.verify_login(USER, _wrong_code(totp, secret)) is False

    async def test_non_ascii_digits_are_plain_failure(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        await _enroll(manager, totp)
        assert await manager.verify_login(USER, "١٢٣٤٥٦") is False
        with pytest.raises(InvalidVerificationToken):
            await manager.disable(USER, "١٢٣٤٥٦")
        with pytest.raises(InvalidVerificationToken):
            await manager.regenerate_backup_codes(USER, "１２３４５６")
        assert await manager.is_enabled(USER) is True

    async def test_not_enrolled_is_plain_failure(self, manager: MFAManager) -> None:
        assert await manager.verify_login("nobody", "123456") is False

    async def test_pending_user_cannot_log_in(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        start = await manager.begin_enrollment(USER, "a")
        assert await manager.verify_login(USER, totp.generate_code(start.secret)) is False

    async def test_failure_logged_with_masked_attempt(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, _codes = await _enroll(manager, totp)
        wrong = _wrong_code(totp, secret)
        with capture_logs() as logs:
            await manager.verify_login(USER, wrong)
        failures = [e for e in logs if e["event"] == "mfa_verification_failed"]
        assert len(failures) == 1
        assert failures[0]["attempt"] == wrong[:2] + "****"
        assert wrong not in str(failures[0])

    async def test_attempts_are_rate_limited(
        self, store: InMemoryMFAStore, totp: TOTPEngine
    ) -> None:
        limiter = SlidingWindowRateLimiter()
        manager = MFAManager(store, totp, limiter=limiter, attempt_limit=3)
        secret, _codes = await _enroll(manager, totp)
        wrong = _wrong_code(totp, secret)
        for _ in range(3):
            assert await manager.verify_login(USER, wrong) is False
        with pytest.raises(RateLimitExceeded) as exc_info:
            await manager.verify_login(USER, totp.generate_code(secret))
        assert exc_info.value.retry_after_seconds >= 1


class TestDisableAndRegenerate:
    async def test_disable_requires_valid_code(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, _codes = await _enroll(manager, totp)
        with pytest.raises(InvalidVerificationToken):
            await manager.disable(USER, _wrong_code(totp, secret))
        assert await manager.is_enabled(USER) is True

    async def test_disable_clears_backup_codes(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, codes = await _enroll(manager, totp)
        assert await manager.disable(USER, totp.generate_code(secret)) is True
        status = await manager.status(USER)
        assert status.state == MFAState.DISABLED
        assert status.backup_codes_remaining == 0
        assert await manager.verify_login(USER, codes[1]) is False

    async def test_reenroll_after_disable(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, _codes = await _enroll(manager, totp)
        await manager.disable(USER, totp.generate_code(secret))
        start = await manager.begin_enrollment(USER, "a")
        assert start.secret != secret

    async def test_regenerate_replaces_whole_set(
        self, manager: MFAManager, totp: TOTPEngine
    ) -> None:
        secret, old = await _enroll(manager, totp)
        await manager.verify_login(USER, old[0])
        new = await manager.regenerate_backup_codes(USER, totp.generate_code(secret))
        assert len(new) == 10
        assert not set(new) & set(old)
        assert (await manager.status(USER)).backup_codes_remaining == 10
        assert await manager.verify_login(USER, old[1]) is False


class TestStoreFailures:
    async def test_slow_store_surfaces_store_unavailable(self, totp: TOTPEngine) -> None:
        manager = MFAManager(SlowMFAStore(), totp, store_timeout=0.05)
        with pytest.raises(StoreUnavailable):
            await manager.verify_login(USER, "123456")

    async def test_slow_store_blocks_enrollment(self, totp: TOTPEngine) -> None:
        manager = MFAManager(SlowMFAStore(), totp, store_timeout=0.05)
        with pytest.raises(StoreUnavailable):
            await manager.begin_enrollment(USER, "a")


class TestInMemoryStore:
    async def test_compare_and_swap_rejects_stale_expected(
        self, store: InMemoryMFAStore
    ) -> None:
        await store.enable(USER, "SECRET", ["A", "B"], enrolled_at=datetime.now(UTC))
        assert await store.replace_backup_codes(USER, ["A", "B"], ["B"]) is True
        assert await store.replace_backup_codes(USER, ["A", "B"], ["A"]) is False
        record = await store.get(USER)
        assert record is not None
        assert record.backup_codes == ["B"]

    async def test_get_returns_copy(self, store: InMemoryMFAStore) -> None:
        await store.enable(USER, "SECRET", ["A"], enrolled_at=datetime.now(UTC))
        record = await store.get(USER)
        assert record is not None
        record.backup_codes.append("X")
        again = await store.get(USER)
        assert again is not None
        assert again.backup_codes == ["A"]
