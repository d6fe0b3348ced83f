"""Client key management and validation API endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Response

from access_guard.api.deps import get_client_key_manager, get_current_tenant_id
from access_guard.api.schemas import (
    ClientKeyCreatedResponse,
    ClientKeyCreateRequest,
    ClientKeyResponse,
    ClientValidateRequest,
    ClientValidateResponse,
)
from access_guard.auth.client_keys import ClientKeyManager, ClientKeyOptions

logger = structlog.get_logger()

router = APIRouter(tags=["client-keys"])

TenantDep = Annotated[uuid.UUID, Depends(get_current_tenant_id)]
ManagerDep = Annotated[ClientKeyManager, Depends(get_client_key_manager)]


@router.post("/client-keys", status_code=201)
async def create_client_key(
    body: ClientKeyCreateRequest, tenant_id: TenantDep, manager: ManagerDep
) -> ClientKeyCreatedResponse:
    """Issue a key for the session's workshop. The key is shown once."""
    created = await manager.create_key(
        tenant_id,
        body.name,
        ClientKeyOptions(
            environment=body.environment,
            domains=body.domains,
            rate_limit_per_minute=body.rate_limit_per_minute,
            allowed_routes=body.allowed_routes,
            expires_at=body.expires_at,
        ),
    )
    return ClientKeyCreatedResponse(
        key=ClientKeyResponse.model_validate(created.record),
        client_key=created.plaintext_key,
    )


@router.get("/client-keys")
async def list_client_keys(
    tenant_id: TenantDep, manager: ManagerDep
) -> list[ClientKeyResponse]:
    """List the workshop's keys, newest first, without key values."""
    records = await manager.list_keys(tenant_id)
    return [ClientKeyResponse.model_validate(r) for r in records]


@router.delete("/client-keys/{key_id}", status_code=204)
async def revoke_client_key(
    key_id: uuid.UUID, tenant_id: TenantDep, manager: ManagerDep
) -> Response:
    """Revoke a key owned by the session's workshop."""
    if not await manager.revoke(key_id, tenant_id):
        raise HTTPException(status_code=404, detail="Client key not found")
    return Response(status_code=204)


@router.post("/client/validate")
async def validate_client_key(
    body: ClientValidateRequest,
    response: Response,
    manager: ManagerDep,
    x_client_key: Annotated[str | None, Header()] = None,
    origin: Annotated[str | None, Header()] = None,
) -> ClientValidateResponse:
    """Validate a widget's client key against origin, route and rate limit.

    Raises:
        HTTPException 401: missing, malformed, unknown, revoked or expired key.
        HTTPException 403: origin or route not allowed for this key.
        RateLimitExceeded: mapped to 429 by the app exception handler.
    """
    record = await manager.verify_key(x_client_key)
    if record is None:
        raise HTTPException(status_code=401, detail="Invalid client key")

    if not manager.is_domain_allowed(record, origin):
        logger.warning("client_key_origin_denied", key_id=str(record.id), origin=origin)
        raise HTTPException(status_code=403, detail="Origin not authorized")
    if body.route is not None and not manager.is_route_allowed(record, body.route):
        raise HTTPException(status_code=403, detail="Route not allowed for this key")

    result = manager.enforce_rate_limit(record)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    return ClientValidateResponse(
        key_id=record.id,
        tenant_id=record.tenant_id,
        name=record.name,
        rate_limit_remaining=result.remaining,
    )
