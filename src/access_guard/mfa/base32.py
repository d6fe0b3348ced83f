"""Base32 codec for TOTP secrets (RFC 4648 alphabet, unpadded)."""

from __future__ import annotations

import base64
import binascii

from access_guard.errors import InvalidEncoding

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_ALPHABET_SET = frozenset(ALPHABET)


def encode(data: bytes) -> str:
    """Encode raw bytes as uppercase base32 without ``=`` padding.

    A trailing partial 5-bit group is zero-filled on the low end, so
    any byte length is accepted.
    """
    return base64.b32encode(data).decode("ascii").rstrip("=")


def decode(text: str) -> bytes:
    """Decode a base32 string back to raw bytes.

    Case-insensitive; trailing ``=`` padding is ignored.

    Raises:
        InvalidEncoding: on characters outside the alphabet or a length
            no encoder could have produced.
    """
    cleaned = text.upper().rstrip("=")
    bad = sorted({ch for ch in cleaned if ch not in _ALPHABET_SET})
    if bad:
        raise InvalidEncoding(f"Invalid character in base32: {''.join(bad)!r}")

    padded = cleaned + "=" * (-len(cleaned) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error as exc:
        raise InvalidEncoding(f"Invalid base32 length: {len(cleaned)}") from exc
