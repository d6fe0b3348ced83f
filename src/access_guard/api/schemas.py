"""Request/response schemas for the API layer."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from access_guard.mfa.store import MFAState

# --- MFA ---


class MFATokenRequest(BaseModel):
    """Body carrying a TOTP code or a backup code."""

    token: str = Field(..., min_length=6, max_length=16)


class MFASetupResponse(BaseModel):
    """Secret and provisioning URI. Shown once; never returned again."""

    secret: str
    provisioning_uri: str


class BackupCodesResponse(BaseModel):
    """Plaintext backup codes, shown exactly once."""

    backup_codes: list[str]


class MFAVerifyResponse(BaseModel):
    valid: bool


class MFAStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    state: MFAState
    enabled: bool
    enrolled_at: datetime | None
    backup_codes_remaining: int


# --- Client keys ---


class ClientKeyCreateRequest(BaseModel):
    """Request body for POST /client-keys."""

    name: str = Field(..., min_length=1, max_length=100)
    environment: Literal["test", "live"] = "test"
    domains: list[str] = Field(default_factory=list)
    rate_limit_per_minute: int | None = Field(default=None, ge=1, le=100_000)
    allowed_routes: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None


class ClientKeyResponse(BaseModel):
    """Stored key metadata. Never includes the key itself."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    prefix: str
    authorized_domains: list[str]
    allowed_routes: list[str]
    rate_limit_per_minute: int
    is_active: bool
    total_requests: int
    last_used_at: datetime | None
    expires_at: datetime | None
    created_at: datetime | None


class ClientKeyCreatedResponse(BaseModel):
    """Creation result; ``client_key`` cannot be retrieved later."""

    key: ClientKeyResponse
    client_key: str


class ClientValidateRequest(BaseModel):
    route: str | None = Field(default=None, description="Path the widget will call.")


class ClientValidateResponse(BaseModel):
    key_id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    rate_limit_remaining: int
