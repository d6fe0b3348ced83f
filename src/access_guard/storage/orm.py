"""SQLAlchemy ORM models for all project entities."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from access_guard.ids import new_id


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# ──────────────────────────────────────────────
# Tenants (workshops)
# ──────────────────────────────────────────────


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    client_keys: Mapped[list["ClientKey"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan"
    )


# ──────────────────────────────────────────────
# Client API keys
# ──────────────────────────────────────────────


class ClientKey(Base):
    __tablename__ = "client_keys"
    __table_args__ = (
        CheckConstraint("rate_limit_per_minute > 0", name="ck_client_keys_rate_limit"),
        CheckConstraint("prefix IN ('ck_test_', 'ck_live_')", name="ck_client_keys_prefix"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_id)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    prefix: Mapped[str] = mapped_column(String(16))
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    authorized_domains: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    allowed_routes: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    rate_limit_per_minute: Mapped[int] = mapped_column(Integer, default=100)
    is_active: Mapped[bool] = mapped_column(default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    total_requests: Mapped[int] = mapped_column(Integer, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="client_keys")


# ──────────────────────────────────────────────
# MFA
# ──────────────────────────────────────────────


class UserMFA(Base):
    """TOTP configuration for one user.

    ``secret_encrypted`` holds a Fernet token, never the raw base32
    secret. Backup codes are consumed by compare-and-swap on the whole
    JSONB array.
    """

    __tablename__ = "user_mfa"
    __table_args__ = (
        CheckConstraint(
            "state IN ('pending_verification', 'enabled', 'disabled')",
            name="ck_user_mfa_state",
        ),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    secret_encrypted: Mapped[str] = mapped_column(Text)
    state: Mapped[str] = mapped_column(String(32))
    backup_codes: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    enrolled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
