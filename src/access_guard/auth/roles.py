"""Ordered role hierarchy for role-based access control."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """Roles in ascending order of privilege.

    Declaration order is the rank; insert new roles at the intended
    position rather than editing numbers.
    """

    CUSTOMER = "customer"
    EMPLOYEE = "employee"
    MANAGER = "manager"
    OWNER = "owner"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, required: Role) -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        """Role for ``value``, or None if absent or unknown."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_RANKS: dict[Role, int] = {role: rank for rank, role in enumerate(Role)}


def has_role(role: Role | None, required: Role) -> bool:
    """True when ``role`` ranks at or above ``required``.

    A missing role ranks below every defined role.
    """
    return role is not None and role.at_least(required)
