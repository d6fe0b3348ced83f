"""MFA enrollment and verification API endpoints.

All endpoints sit behind the gateway's protected ``/api/v1/auth/mfa``
prefix, so the session is always present here.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from access_guard.api.deps import get_current_session, get_mfa_manager
from access_guard.api.schemas import (
    BackupCodesResponse,
    MFASetupResponse,
    MFAStatusResponse,
    MFATokenRequest,
    MFAVerifyResponse,
)
from access_guard.auth.context import SessionDescriptor
from access_guard.errors import MFAAlreadyEnabled
from access_guard.mfa.manager import MFAManager

logger = structlog.get_logger()

router = APIRouter(prefix="/auth/mfa", tags=["mfa"])

SessionDep = Annotated[SessionDescriptor, Depends(get_current_session)]
ManagerDep = Annotated[MFAManager, Depends(get_mfa_manager)]


@router.post("/setup")
async def setup_mfa(session: SessionDep, manager: ManagerDep) -> MFASetupResponse:
    """Start enrollment: issue a pending secret and its otpauth URI."""
    try:
        start = await manager.begin_enrollment(
            session.user_id, session.user_email or session.user_id
        )
    except MFAAlreadyEnabled:
        raise HTTPException(status_code=409, detail="MFA already enabled") from None
    return MFASetupResponse(secret=start.secret, provisioning_uri=start.provisioning_uri)


@router.post("/verify")
async def confirm_mfa(
    body: MFATokenRequest, session: SessionDep, manager: ManagerDep
) -> BackupCodesResponse:
    """Confirm enrollment with the first code from the authenticator."""
    secret = await manager.pending_secret(session.user_id)
    if secret is None:
        raise HTTPException(status_code=404, detail="MFA setup not started")
    codes = await manager.confirm_enrollment(session.user_id, secret, body.token)
    return BackupCodesResponse(backup_codes=codes)


@router.post("/login", response_model=MFAVerifyResponse)
async def verify_mfa_login(
    body: MFATokenRequest, session: SessionDep, manager: ManagerDep
) -> MFAVerifyResponse | JSONResponse:
    """Second-factor check with a TOTP code or a backup code."""
    if await manager.verify_login(session.user_id, body.token):
        return MFAVerifyResponse(valid=True)
    return JSONResponse(
        status_code=401,
        content={"detail": "Invalid verification token", "valid": False},
    )


@router.post("/disable")
async def disable_mfa(
    body: MFATokenRequest, session: SessionDep, manager: ManagerDep
) -> MFAStatusResponse:
    """Turn MFA off. Requires a valid code and a fresh session."""
    await manager.disable(session.user_id, body.token)
    status = await manager.status(session.user_id)
    return MFAStatusResponse.model_validate(status)


@router.post("/backup-codes")
async def regenerate_backup_codes(
    body: MFATokenRequest, session: SessionDep, manager: ManagerDep
) -> BackupCodesResponse:
    """Replace the backup-code set after verification."""
    codes = await manager.regenerate_backup_codes(session.user_id, body.token)
    return BackupCodesResponse(backup_codes=codes)


@router.get("/status")
async def mfa_status(session: SessionDep, manager: ManagerDep) -> MFAStatusResponse:
    status = await manager.status(session.user_id)
    return MFAStatusResponse.model_validate(status)
