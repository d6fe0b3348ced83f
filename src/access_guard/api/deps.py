"""FastAPI dependency injection."""

from __future__ import annotations

import uuid
from typing import cast

from fastapi import HTTPException, Request

from access_guard.auth.client_keys import ClientKeyManager
from access_guard.auth.context import SessionDescriptor
from access_guard.mfa.manager import MFAManager

__all__ = [
    "get_client_key_manager",
    "get_current_session",
    "get_current_tenant_id",
    "get_mfa_manager",
]


async def get_mfa_manager(request: Request) -> MFAManager:
    """Retrieve MFAManager from app state.

    Initialized by ``create_app``.
    """
    return cast(MFAManager, request.app.state.mfa_manager)


async def get_client_key_manager(request: Request) -> ClientKeyManager:
    """Retrieve ClientKeyManager from app state.

    Initialized by ``create_app``.
    """
    return cast(ClientKeyManager, request.app.state.client_key_manager)


async def get_current_session(request: Request) -> SessionDescriptor:
    """Session resolved by the gateway middleware.

    Raises:
        HTTPException 401: no session (route not gated, or resolver empty).
    """
    session = getattr(request.state, "session", None)
    if session is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return cast(SessionDescriptor, session)


async def get_current_tenant_id(request: Request) -> uuid.UUID:
    """Tenant of the current session as a UUID.

    Raises:
        HTTPException 401: no session.
        HTTPException 403: session has no valid tenant.
    """
    session = await get_current_session(request)
    if not session.tenant_id:
        raise HTTPException(status_code=403, detail="No workshop associated")
    try:
        return uuid.UUID(session.tenant_id)
    except ValueError:
        raise HTTPException(status_code=403, detail="No workshop associated") from None
