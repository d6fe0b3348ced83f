"""Tests for route table validation and classification."""

from typing import Any

import pytest

from access_guard.auth.roles import Role
from access_guard.errors import RouteTableError
from access_guard.gateway.routes import (
    DEFAULT_ROUTES,
    load_route_table,
    prefix_matches,
)


@pytest.fixture(scope="module")
def table():
    return load_route_table(DEFAULT_ROUTES)


class TestPrefixMatches:
    @pytest.mark.parametrize(
        ("path", "prefix"),
        [("/admin", "/admin"), ("/admin/users", "/admin"), ("/x", "/"), ("/a/b", "/a/")],
    )
    def test_matches(self, path: str, prefix: str) -> None:
        assert prefix_matches(path, prefix) is True

    @pytest.mark.parametrize(
        ("path", "prefix"), [("/administrator", "/admin"), ("/ad", "/admin")]
    )
    def test_segment_boundary(self, path: str, prefix: str) -> None:
        assert prefix_matches(path, prefix) is False


class TestClassify:
    def test_skipped_paths(self, table) -> None:
        for path in ("/", "/_next/chunk", "/static/app.css", "/health", "/logo.png"):
            assert table.classify(path).skip is True

    def test_protected_with_tenant(self, table) -> None:
        match = table.classify("/dashboard/cases/12")
        assert match.protected is True
        assert match.tenant_required is True
        assert match.sensitive is False
        assert match.required_role is None
        assert match.is_api is False

    def test_sensitive_owner_route(self, table) -> None:
        match = table.classify("/dashboard/billing/invoices")
        assert match.sensitive is True
        assert match.required_role == Role.OWNER

    def test_longest_role_rule_wins(self, table) -> None:
        assert table.classify("/api/webhooks/admin/replay").required_role == Role.OWNER
        assert table.classify("/api/webhooks/stripe").required_role is None

    def test_rate_limit_class(self, table) -> None:
        match = table.classify("/api/v1/auth/mfa/login")
        assert match.rate_limit_class == "/api/v1/auth"
        assert match.rate_limit == 10
        assert match.is_api is True

    def test_public_only(self, table) -> None:
        match = table.classify("/auth/login")
        assert match.public_only is True
        assert match.protected is False
        assert match.rate_limit == 5

    def test_prefix_lookalike_is_not_protected(self, table) -> None:
        assert table.classify("/administrator").protected is False
        assert table.classify("/dashboards").protected is False

    def test_client_validation_endpoint_is_open(self, table) -> None:
        match = table.classify("/api/v1/client/validate")
        assert match.protected is False
        assert match.skip is False

    def test_mfa_disable_is_sensitive(self, table) -> None:
        match = table.classify("/api/v1/auth/mfa/disable")
        assert match.protected is True
        assert match.sensitive is True


def _routes(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {"protected": ["/dashboard"]}
    base.update(overrides)
    return base


class TestValidation:
    def test_default_table_loads(self) -> None:
        load_route_table(DEFAULT_ROUTES)

    def test_sensitive_outside_protected(self) -> None:
        with pytest.raises(RouteTableError, match="not covered"):
            load_route_table(_routes(sensitive=["/billing"]))

    def test_role_rule_outside_protected(self) -> None:
        with pytest.raises(RouteTableError, match="not covered"):
            load_route_table(_routes(role_rules={"/admin": "owner"}))

    def test_tenant_rule_outside_protected(self) -> None:
        with pytest.raises(RouteTableError):
            load_route_table(_routes(tenant_required=["/cases"]))

    def test_public_only_inside_protected(self) -> None:
        with pytest.raises(RouteTableError, match="Public-only"):
            load_route_table(_routes(public_only=["/dashboard/login"]))

    def test_prefix_without_slash(self) -> None:
        with pytest.raises(RouteTableError):
            load_route_table(_routes(protected=["dashboard"]))

    def test_non_positive_rate_limit(self) -> None:
        with pytest.raises(RouteTableError):
            load_route_table(_routes(rate_limits={"/auth/login": 0}))

    def test_unknown_role(self) -> None:
        with pytest.raises(RouteTableError):
            load_route_table(_routes(role_rules={"/dashboard": "superuser"}))

    def test_route_table_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            load_route_table(_routes(sensitive=["/billing"]))
