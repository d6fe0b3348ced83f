"""Per-request gateway: classify, rate limit, gate, annotate.

The gateway is a pure decision function over a path, a client
identity and a session resolver. ``GatewayMiddleware`` turns its
decisions into HTTP responses.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

from access_guard.audit import log_security_event
from access_guard.auth.context import SessionDescriptor
from access_guard.auth.rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from access_guard.auth.roles import has_role
from access_guard.errors import (
    AccessGuardError,
    GateDenied,
    RateLimitExceeded,
    RoleInsufficient,
    SessionAbsent,
    SessionStale,
    StoreUnavailable,
    TenantAssociationMissing,
)
from access_guard.gateway.routes import RouteMatch, RouteTable
from access_guard.storage.bounded import bounded

SECURITY_HEADERS: dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "X-XSS-Protection": "1; mode=block",
}

# Request headers the gateway owns; client-supplied copies are dropped.
CONTEXT_HEADERS: tuple[str, ...] = (
    "x-user-id",
    "x-user-email",
    "x-tenant-id",
    "x-tenant-name",
    "x-user-role",
    "x-client-ip",
    "x-ratelimit-remaining",
)

SessionResolver = Callable[[], Awaitable[SessionDescriptor | None]]


class DecisionKind(StrEnum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    REJECT = "reject"


@dataclass(frozen=True)
class GatewayDecision:
    """What to do with one request.

    ``response_headers`` are set on whatever response goes out;
    ``context_headers`` are added to the request for downstream handlers
    (ALLOW only).
    """

    kind: DecisionKind
    client_ip: str
    status_code: int = 200
    location: str | None = None
    error: AccessGuardError | None = None
    session: SessionDescriptor | None = None
    rate_limit: RateLimitResult | None = None
    body: dict[str, Any] | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    context_headers: dict[str, str] = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW


class RequestGateway:
    """Evaluate every inbound request against the route table.

    Order: classify, rate limit, resolve session, then for protected
    routes the session, tenant, freshness and role gates. Each denial
    emits exactly one security event.
    """

    def __init__(
        self,
        routes: RouteTable,
        limiter: SlidingWindowRateLimiter,
        *,
        freshness: timedelta = timedelta(minutes=30),
        resolve_timeout: float = 3.0,
        window_ms: int = 60_000,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.routes = routes
        self.limiter = limiter
        self._freshness = freshness
        self._timeout = resolve_timeout
        self._window_ms = window_ms
        self._clock = clock

    def is_fresh(self, session: SessionDescriptor, now: datetime | None = None) -> bool:
        if session.issued_at is None:
            return False
        now = now or self._clock()
        issued_at = session.issued_at
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=UTC)
        return now - issued_at <= self._freshness

    async def evaluate(
        self,
        path: str,
        client_ip: str,
        resolve_session: SessionResolver,
    ) -> GatewayDecision:
        match = self.routes.classify(path)
        if match.skip:
            return GatewayDecision(
                kind=DecisionKind.ALLOW,
                client_ip=client_ip,
                response_headers=dict(SECURITY_HEADERS),
            )

        rate: RateLimitResult | None = None
        if match.rate_limit_class is not None and match.rate_limit is not None:
            rate = self.limiter.check(
                client_ip, match.rate_limit_class, match.rate_limit, self._window_ms
            )
            if not rate.allowed:
                return self._reject_rate_limited(match, client_ip, rate)

        session, store_error = await self._resolve(resolve_session)

        if match.protected:
            if store_error is not None:
                log_security_event(
                    "session_store_unavailable", path=path, client_ip=client_ip
                )
                return GatewayDecision(
                    kind=DecisionKind.REJECT,
                    client_ip=client_ip,
                    status_code=503,
                    error=store_error,
                    body={"detail": "Authentication service unavailable"},
                    response_headers=dict(SECURITY_HEADERS),
                )
            try:
                session = self._gate(match, session)
            except GateDenied as denial:
                self._log_denial(denial, match, client_ip, session)
                return self._deny(denial, match, client_ip, session)

            if match.sensitive:
                log_security_event(
                    "sensitive_route_access",
                    path=path,
                    client_ip=client_ip,
                    user_id=session.user_id,
                    denied=False,
                    user_role=str(session.role),
                    tenant_id=session.tenant_id,
                )
            return self._allow(client_ip, session, rate)

        if match.public_only and session is not None and session.has_tenant:
            return GatewayDecision(
                kind=DecisionKind.REDIRECT,
                client_ip=client_ip,
                status_code=307,
                location=self.routes.landing_path,
                session=session,
                response_headers=dict(SECURITY_HEADERS),
            )

        return self._allow(client_ip, session, rate)

    async def _resolve(
        self, resolve_session: SessionResolver
    ) -> tuple[SessionDescriptor | None, StoreUnavailable | None]:
        try:
            session = await bounded(
                resolve_session(), self._timeout, operation="session_resolve"
            )
        except StoreUnavailable as exc:
            return None, exc
        return session, None

    def _gate(
        self, match: RouteMatch, session: SessionDescriptor | None
    ) -> SessionDescriptor:
        if session is None:
            raise SessionAbsent("Authentication required")
        if match.tenant_required and not session.has_tenant:
            raise TenantAssociationMissing("No workshop associated with this account")
        if match.sensitive and not self.is_fresh(session):
            raise SessionStale("Session too old for this operation")
        if match.required_role is not None and not has_role(
            session.role, match.required_role
        ):
            raise RoleInsufficient(f"Requires role: {match.required_role}")
        return session

    def _reject_rate_limited(
        self, match: RouteMatch, client_ip: str, rate: RateLimitResult
    ) -> GatewayDecision:
        error = RateLimitExceeded(
            rate.retry_after_ms or self._window_ms,
            key=f"{client_ip}:{match.rate_limit_class}",
        )
        log_security_event(
            "rate_limit_exceeded",
            path=match.path,
            client_ip=client_ip,
            retry_after=error.retry_after_seconds,
        )
        return GatewayDecision(
            kind=DecisionKind.REJECT,
            client_ip=client_ip,
            status_code=429,
            error=error,
            rate_limit=rate,
            body={"detail": "Too Many Requests"},
            response_headers={
                **SECURITY_HEADERS,
                "Retry-After": str(error.retry_after_seconds),
            },
        )

    def _log_denial(
        self,
        denial: GateDenied,
        match: RouteMatch,
        client_ip: str,
        session: SessionDescriptor | None,
    ) -> None:
        log_security_event(
            denial.event,
            path=match.path,
            client_ip=client_ip,
            user_id=session.user_id if session else None,
            user_role=str(session.role) if session else None,
            tenant_id=session.tenant_id if session else None,
            required_role=str(match.required_role) if match.required_role else None,
        )

    def _deny(
        self,
        denial: GateDenied,
        match: RouteMatch,
        client_ip: str,
        session: SessionDescriptor | None,
    ) -> GatewayDecision:
        routes = self.routes
        if isinstance(denial, SessionAbsent):
            status, reason = 401, "authentication_required"
            location = f"{routes.login_path}?{urlencode({'returnUrl': match.path})}"
        elif isinstance(denial, SessionStale):
            status, reason = 401, "session_expired"
            query = urlencode({"returnUrl": match.path, "security": "session_expired"})
            location = f"{routes.login_path}?{query}"
        elif isinstance(denial, TenantAssociationMissing):
            status, reason = 403, "needs_onboarding"
            location = routes.onboarding_path
        else:
            status, reason = 403, "insufficient_role"
            location = routes.unauthorized_path

        if match.is_api:
            return GatewayDecision(
                kind=DecisionKind.REJECT,
                client_ip=client_ip,
                status_code=status,
                error=denial,
                session=session,
                body={"detail": str(denial), "reason": reason, "return_url": match.path},
                response_headers=dict(SECURITY_HEADERS),
            )
        return GatewayDecision(
            kind=DecisionKind.REDIRECT,
            client_ip=client_ip,
            status_code=307,
            location=location,
            error=denial,
            session=session,
            response_headers=dict(SECURITY_HEADERS),
        )

    def _allow(
        self,
        client_ip: str,
        session: SessionDescriptor | None,
        rate: RateLimitResult | None,
    ) -> GatewayDecision:
        response_headers = dict(SECURITY_HEADERS)
        context = {"x-client-ip": client_ip}
        if rate is not None:
            response_headers["X-RateLimit-Remaining"] = str(rate.remaining)
            context["x-ratelimit-remaining"] = str(rate.remaining)
        if session is not None:
            context["x-user-id"] = session.user_id
            context["x-user-role"] = str(session.role)
            if session.user_email:
                context["x-user-email"] = session.user_email
            if session.tenant_id:
                context["x-tenant-id"] = session.tenant_id
            if session.tenant_name:
                context["x-tenant-name"] = session.tenant_name
        return GatewayDecision(
            kind=DecisionKind.ALLOW,
            client_ip=client_ip,
            session=session,
            rate_limit=rate,
            response_headers=response_headers,
            context_headers=context,
        )
