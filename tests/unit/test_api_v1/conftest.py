"""Fixtures for API tests: in-memory stores and a header-driven identity provider."""

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from access_guard.api.app import create_app
from access_guard.auth.context import SessionDescriptor
from access_guard.auth.key_store import InMemoryClientKeyStore
from access_guard.auth.roles import Role
from access_guard.config import Settings
from access_guard.mfa.store import InMemoryMFAStore

TENANT_ID = uuid.UUID("0190f8a0-0000-7000-8000-000000000001")
OTHER_TENANT_ID = uuid.UUID("0190f8a0-0000-7000-8000-000000000002")


async def header_session(request: Request) -> SessionDescriptor | None:
    """Build a session from ``x-test-*`` headers; absent user means signed out."""
    user = request.headers.get("x-test-user")
    if user is None:
        return None
    age = int(request.headers.get("x-test-age-minutes", "1"))
    return SessionDescriptor(
        user_id=user,
        role=Role(request.headers.get("x-test-role", "owner")),
        issued_at=datetime.now(UTC) - timedelta(minutes=age),
        user_email=f"{user}@garage.example",
        tenant_id=request.headers.get("x-test-tenant", str(TENANT_ID)) or None,
    )


def _as_user(
    user: str = "user-1",
    *,
    role: str = "owner",
    tenant: uuid.UUID | None = TENANT_ID,
    age_minutes: int = 1,
) -> dict[str, str]:
    return {
        "x-test-user": user,
        "x-test-role": role,
        "x-test-tenant": str(tenant) if tenant else "",
        "x-test-age-minutes": str(age_minutes),
    }


@pytest.fixture()
def as_user():
    """Header factory for requests made as a given user."""
    return _as_user


@pytest.fixture()
def app() -> FastAPI:
    return create_app(
        app_settings=Settings(environment="testing", _env_file=None),  # type: ignore[arg-type]
        mfa_store=InMemoryMFAStore(),
        key_store=InMemoryClientKeyStore(),
        session_resolver=header_session,
    )


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
