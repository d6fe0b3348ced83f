"""Starlette middleware applying ``RequestGateway`` decisions."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from access_guard.auth.context import SessionDescriptor
from access_guard.gateway.client_ip import client_ip
from access_guard.gateway.gateway import (
    CONTEXT_HEADERS,
    DecisionKind,
    GatewayDecision,
    RequestGateway,
)

RequestSessionResolver = Callable[[Request], Awaitable[SessionDescriptor | None]]


async def no_session(request: Request) -> None:
    """Resolver used when no identity provider is wired: nobody is signed in."""
    return None


def _inject_context(request: Request, context: dict[str, str]) -> None:
    """Replace gateway-owned request headers with trusted values."""
    owned = {name.encode("latin-1") for name in CONTEXT_HEADERS}
    headers = [(k, v) for k, v in request.scope["headers"] if k.lower() not in owned]
    headers.extend(
        (name.encode("latin-1"), value.encode("latin-1", errors="replace"))
        for name, value in context.items()
    )
    request.scope["headers"] = headers


def _denial_response(decision: GatewayDecision) -> Response:
    if decision.kind == DecisionKind.REDIRECT and decision.location is not None:
        return RedirectResponse(decision.location, status_code=decision.status_code)
    if decision.body is not None:
        return JSONResponse(decision.body, status_code=decision.status_code)
    return PlainTextResponse("Forbidden", status_code=decision.status_code)


class GatewayMiddleware(BaseHTTPMiddleware):
    """Run the gateway before routing and decorate every response."""

    def __init__(
        self,
        app: ASGIApp,
        gateway: RequestGateway,
        session_resolver: RequestSessionResolver = no_session,
    ) -> None:
        super().__init__(app)
        self.gateway = gateway
        self.session_resolver = session_resolver

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Gate the request, then forward or short-circuit."""
        peer = request.client.host if request.client else None
        ip = client_ip(request.headers, peer)

        async def resolve() -> SessionDescriptor | None:
            return await self.session_resolver(request)

        decision = await self.gateway.evaluate(request.url.path, ip, resolve)
        request.state.gateway = decision
        request.state.session = decision.session

        if decision.allowed:
            _inject_context(request, decision.context_headers)
            response = await call_next(request)
        else:
            response = _denial_response(decision)

        for name, value in decision.response_headers.items():
            response.headers[name] = value
        return response
