"""Client identity extraction from proxy headers."""

from __future__ import annotations

import hashlib
import ipaddress
from collections.abc import Mapping


def _parse_ip(value: str | None) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    if not value:
        return None
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def is_public_ip(value: str) -> bool:
    address = _parse_ip(value)
    return address is not None and address.is_global


def client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    """Best-effort client identifier for rate limiting and audit.

    Priority: ``cf-connecting-ip``, ``x-real-ip``, first public address in
    ``x-forwarded-for``, then the socket peer. Without any valid address
    a ``fingerprint_`` digest of user-agent and accept-language is used,
    so unidentifiable clients still share a bucket per browser profile.
    """
    for header in ("cf-connecting-ip", "x-real-ip"):
        address = _parse_ip(headers.get(header))
        if address is not None:
            return str(address)

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        for candidate in forwarded.split(","):
            if is_public_ip(candidate):
                return str(_parse_ip(candidate))

    peer_address = _parse_ip(peer)
    if peer_address is not None:
        return str(peer_address)

    material = headers.get("user-agent", "") + headers.get("accept-language", "")
    return "fingerprint_" + hashlib.sha256(material.encode()).hexdigest()[:16]
