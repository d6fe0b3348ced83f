"""Single-use MFA recovery codes."""

from __future__ import annotations

import hmac
import re
import secrets

BACKUP_CODE_PATTERN = re.compile(r"^[0-9A-F]{4}-[0-9A-F]{4}$")


def generate_backup_codes(count: int = 10) -> list[str]:
    """Generate ``count`` codes of the form ``XXXX-XXXX`` (uppercase hex)."""
    codes = []
    for _ in range(count):
        raw = secrets.token_hex(4).upper()
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def is_backup_code_format(value: str) -> bool:
    return BACKUP_CODE_PATTERN.match(value.strip().upper()) is not None


def consume_backup_code(
    codes: list[str], submitted: str
) -> tuple[bool, list[str]]:
    """Remove ``submitted`` from ``codes`` if present.

    Every stored code is compared in constant time and the loop never
    exits early, so response time does not depend on the match position.

    Returns:
        (matched, remaining). ``remaining`` is a new list; ``codes`` is
        not mutated.
    """
    candidate = submitted.strip().upper().encode("ascii", errors="replace")
    matched_index: int | None = None
    for index, code in enumerate(codes):
        if hmac.compare_digest(candidate, code.encode("ascii")) and matched_index is None:
            matched_index = index

    if matched_index is None:
        return False, list(codes)
    return True, codes[:matched_index] + codes[matched_index + 1 :]
