"""Client keys, roles, sessions and rate limiting."""

from access_guard.auth.context import ClientKeyRecord, SessionDescriptor
from access_guard.auth.keys import generate_client_key, hash_client_key
from access_guard.auth.roles import Role, has_role

__all__ = [
    "ClientKeyRecord",
    "Role",
    "SessionDescriptor",
    "generate_client_key",
    "has_role",
    "hash_client_key",
]
