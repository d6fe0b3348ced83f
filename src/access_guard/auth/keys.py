"""Client key generation, hashing and format utilities."""

from __future__ import annotations

import hashlib
import re
import secrets

KEY_PREFIXES: dict[str, str] = {"test": "ck_test_", "live": "ck_live_"}
CLIENT_KEY_PATTERN = re.compile(r"^(ck_test_|ck_live_)[0-9a-f]{64}$")


def generate_client_key(environment: str = "test") -> tuple[str, str, str]:
    """Generate a client key, return (full_key, key_hash, prefix).

    Full key is shown only once at creation time.
    Only hash and prefix are stored in DB.

    Args:
        environment: Key environment, 'test' or 'live'.

    Returns:
        Tuple of (full_key, key_hash, prefix).

    Raises:
        ValueError: unknown environment.
    """
    try:
        prefix = KEY_PREFIXES[environment]
    except KeyError:
        raise ValueError(f"Unknown key environment: {environment!r}") from None
    full_key = prefix + secrets.token_hex(32)
    return full_key, hash_client_key(full_key), prefix


def hash_client_key(key: str) -> str:
    """Hash a client key for lookup.

    Args:
        key: The full client key string.

    Returns:
        SHA-256 hex digest of the key.
    """
    return hashlib.sha256(key.encode()).hexdigest()


def is_client_key_format(key: str | None) -> bool:
    return bool(key) and CLIENT_KEY_PATTERN.match(key) is not None  # type: ignore[arg-type]


def _normalize_host(host: str) -> str:
    host = host.strip().lower()
    if "://" in host:
        host = host.split("://", 1)[1]
    return host.split("/", 1)[0]


def domain_matches(host: str, authorized: str) -> bool:
    """True if ``host`` equals ``authorized`` or is one of its subdomains.

    ``*.example.com`` matches subdomains only, not the apex.
    Ports are significant (``localhost:3000`` != ``localhost:3001``).
    """
    host = _normalize_host(host)
    authorized = _normalize_host(authorized)
    if not host or not authorized:
        return False
    if authorized.startswith("*."):
        return host.endswith(authorized[1:])
    return host == authorized or host.endswith("." + authorized)
