"""TOTP multi-factor authentication with backup codes."""

from access_guard.mfa.manager import EnrollmentStart, MFAManager, MFAStatus
from access_guard.mfa.store import InMemoryMFAStore, MFARecord, MFAState, MFAStore
from access_guard.mfa.totp import TOTPEngine

__all__ = [
    "EnrollmentStart",
    "InMemoryMFAStore",
    "MFAManager",
    "MFARecord",
    "MFAState",
    "MFAStatus",
    "MFAStore",
    "TOTPEngine",
]
