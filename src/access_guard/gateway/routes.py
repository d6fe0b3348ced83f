"""Gateway route table: typed prefix rules validated at startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from access_guard.auth.roles import Role
from access_guard.errors import RouteTableError


def prefix_matches(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: ``/admin`` matches ``/admin/x``, not ``/administrator``."""
    if prefix == "/":
        return True
    base = prefix.rstrip("/")
    return path == base or path.startswith(base + "/")


def _longest(path: str, prefixes: list[str]) -> str | None:
    matches = [p for p in prefixes if prefix_matches(path, p)]
    return max(matches, key=len) if matches else None


@dataclass(frozen=True)
class RouteMatch:
    """Classification of one request path."""

    path: str
    skip: bool = False
    protected: bool = False
    public_only: bool = False
    tenant_required: bool = False
    sensitive: bool = False
    required_role: Role | None = None
    rate_limit_class: str | None = None
    rate_limit: int | None = None
    is_api: bool = False


class RouteTable(BaseModel):
    """All prefix rules the gateway evaluates, in one auditable place."""

    model_config = ConfigDict(frozen=True)

    protected: list[str] = Field(default_factory=list)
    public_only: list[str] = Field(default_factory=list)
    tenant_required: list[str] = Field(default_factory=list)
    sensitive: list[str] = Field(default_factory=list)
    role_rules: dict[str, Role] = Field(default_factory=dict)
    rate_limits: dict[str, int] = Field(default_factory=dict)
    skip_prefixes: list[str] = Field(default_factory=list)
    static_suffixes: list[str] = Field(default_factory=list)

    api_prefix: str = "/api/"
    login_path: str = "/auth/login"
    onboarding_path: str = "/auth/no-workshop"
    unauthorized_path: str = "/unauthorized"
    landing_path: str = "/dashboard"

    @field_validator(
        "protected", "public_only", "tenant_required", "sensitive", "skip_prefixes"
    )
    @classmethod
    def _check_prefixes(cls, value: list[str]) -> list[str]:
        for prefix in value:
            if not prefix.startswith("/"):
                raise ValueError(f"Route prefix must start with '/': {prefix!r}")
        return value

    @field_validator("role_rules", "rate_limits")
    @classmethod
    def _check_mapping_prefixes(cls, value: dict[str, Any]) -> dict[str, Any]:
        for prefix in value:
            if not prefix.startswith("/"):
                raise ValueError(f"Route prefix must start with '/': {prefix!r}")
        return value

    @field_validator("rate_limits")
    @classmethod
    def _check_limits(cls, value: dict[str, int]) -> dict[str, int]:
        for prefix, limit in value.items():
            if limit <= 0:
                raise ValueError(f"Rate limit for {prefix!r} must be positive")
        return value

    @model_validator(mode="after")
    def _gated_routes_are_protected(self) -> RouteTable:
        gated = [*self.sensitive, *self.role_rules, *self.tenant_required]
        uncovered = [
            p for p in gated if not any(prefix_matches(p, q) for q in self.protected)
        ]
        if uncovered:
            raise ValueError(
                f"Gated prefixes not covered by a protected prefix: {uncovered}"
            )
        overlap = [
            p for p in self.public_only if any(prefix_matches(p, q) for q in self.protected)
        ]
        if overlap:
            raise ValueError(f"Public-only prefixes inside protected area: {overlap}")
        return self

    def classify(self, path: str) -> RouteMatch:
        if self._is_skipped(path):
            return RouteMatch(path=path, skip=True)

        role_prefix = _longest(path, list(self.role_rules))
        rate_prefix = _longest(path, list(self.rate_limits))
        return RouteMatch(
            path=path,
            protected=_longest(path, self.protected) is not None,
            public_only=_longest(path, self.public_only) is not None,
            tenant_required=_longest(path, self.tenant_required) is not None,
            sensitive=_longest(path, self.sensitive) is not None,
            required_role=self.role_rules[role_prefix] if role_prefix else None,
            rate_limit_class=rate_prefix,
            rate_limit=self.rate_limits[rate_prefix] if rate_prefix else None,
            is_api=path.startswith(self.api_prefix),
        )

    def _is_skipped(self, path: str) -> bool:
        if path == "/":
            return True
        if any(prefix_matches(path, p) for p in self.skip_prefixes):
            return True
        return any(path.endswith(s) for s in self.static_suffixes)


def load_route_table(data: dict[str, Any]) -> RouteTable:
    """Validate raw route configuration.

    Raises:
        RouteTableError: configuration is inconsistent.
    """
    try:
        return RouteTable.model_validate(data)
    except ValidationError as exc:
        raise RouteTableError(str(exc)) from exc


DEFAULT_ROUTES: dict[str, Any] = {
    "protected": [
        "/dashboard",
        "/analytics",
        "/cases",
        "/settings",
        "/profile",
        "/workshop",
        "/billing",
        "/admin",
        "/api/leads",
        "/api/analytics",
        "/api/webhooks",
        "/api/admin",
        "/api/stripe",
        "/api/v1/auth/mfa",
        "/api/v1/client-keys",
    ],
    "public_only": ["/auth/login", "/auth/register"],
    "tenant_required": [
        "/dashboard",
        "/analytics",
        "/cases",
        "/api/v1/client-keys",
    ],
    "sensitive": [
        "/dashboard/billing",
        "/dashboard/settings",
        "/workshop/settings",
        "/api/stripe",
        "/api/v1/auth/mfa/disable",
    ],
    "role_rules": {
        "/admin": Role.OWNER,
        "/api/admin": Role.OWNER,
        "/workshop/settings": Role.OWNER,
        "/workshop/users": Role.OWNER,
        "/dashboard/settings": Role.OWNER,
        "/dashboard/billing": Role.OWNER,
        "/api/stripe": Role.OWNER,
        "/api/webhooks/admin": Role.OWNER,
        "/api/v1/client-keys": Role.MANAGER,
    },
    "rate_limits": {
        "/api/auth": 10,
        "/api/v1/auth": 10,
        "/api/leads": 30,
        "/auth/login": 5,
        "/auth/register": 3,
        "/auth/forgot-password": 3,
    },
    "skip_prefixes": [
        "/_next",
        "/static",
        "/favicon.ico",
        "/robots.txt",
        "/sitemap.xml",
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/pricing",
        "/legal",
    ],
    "static_suffixes": [
        ".css",
        ".ico",
        ".jpg",
        ".js",
        ".png",
        ".svg",
        ".webmanifest",
        ".woff2",
    ],
}
