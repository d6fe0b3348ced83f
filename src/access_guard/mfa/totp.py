"""Time-based one-time passwords (RFC 6238) over HMAC-SHA256.

Code generation and comparison are delegated to ``pyotp``. Secrets go
through ``access_guard.mfa.base32`` first so a malformed one surfaces as
``InvalidEncoding`` rather than a ``binascii`` error.
"""

from __future__ import annotations

import hashlib
import re
import time
from datetime import UTC, datetime
from urllib.parse import quote, urlencode

import pyotp

from access_guard.errors import InvalidEncoding
from access_guard.mfa import base32

ALGORITHM = "SHA256"


def _instant(at: float) -> datetime:
    # pyotp reads naive datetimes as local time.
    return datetime.fromtimestamp(int(at), UTC)


class TOTPEngine:
    """Generate and verify time-stepped codes from a shared secret.

    Stateless apart from its parameters; safe to share between requests.
    """

    def __init__(
        self,
        *,
        period: int = 30,
        digits: int = 6,
        window: int = 1,
    ) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        if not 6 <= digits <= 8:
            raise ValueError("digits must be between 6 and 8")
        self.period = period
        self.digits = digits
        self.window = window
        self._token_pattern = re.compile(rf"[0-9]{{{digits}}}")

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret, digits=self.digits, digest=hashlib.sha256, interval=self.period
        )

    def generate_secret(self) -> str:
        """Return a fresh 160-bit secret, base32 encoded (32 characters)."""
        return pyotp.random_base32()

    def counter_at(self, at: float) -> int:
        return int(at // self.period)

    def generate_code(self, secret: str, at: float | None = None) -> str:
        """Compute the code for ``secret`` at Unix time ``at`` (default: now).

        Raises:
            InvalidEncoding: if ``secret`` is not valid base32.
        """
        base32.decode(secret)
        if at is None:
            at = time.time()
        return self._totp(secret).at(_instant(at))

    def verify_code(
        self,
        token: str,
        secret: str,
        window: int | None = None,
        at: float | None = None,
    ) -> bool:
        """Check ``token`` against codes ``window`` steps around ``at``.

        Only ASCII digits of the configured length are considered. A
        malformed secret or token is a failed guess, not an error.
        """
        if window is None:
            window = self.window
        if at is None:
            at = time.time()
        token = token.strip()
        if self._token_pattern.fullmatch(token) is None:
            return False
        try:
            base32.decode(secret)
        except InvalidEncoding:
            return False

        totp = self._totp(secret)
        for step in range(-window, window + 1):
            moment = int(at) + step * self.period
            # Step counters below zero do not exist.
            if moment < 0:
                continue
            if totp.verify(token, for_time=_instant(moment)):
                return True
        return False

    def provisioning_uri(self, secret: str, account_label: str, issuer: str) -> str:
        """Build the ``otpauth://`` URI rendered as a QR code by the client.

        Digits and period are always written out; ``pyotp`` omits them
        at their default values.
        """
        label = f"{quote(issuer, safe='')}:{quote(account_label, safe='')}"
        params = urlencode(
            {
                "secret": secret,
                "issuer": issuer,
                "algorithm": ALGORITHM,
                "digits": self.digits,
                "period": self.period,
            },
            quote_via=quote,
        )
        return f"otpauth://totp/{label}?{params}"
