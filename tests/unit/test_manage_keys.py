"""Tests for the workshop and client key management CLI."""

from __future__ import annotations

import argparse
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from scripts.manage_keys import (
    create_key,
    create_tenant,
    deactivate_tenant,
    list_tenants,
    revoke_key,
)

from access_guard.storage.orm import ClientKey, Tenant


@pytest.fixture()
def mock_session() -> MagicMock:
    """Create a mock sync Session."""
    session = MagicMock()
    session.__enter__ = MagicMock(return_value=session)
    session.__exit__ = MagicMock(return_value=False)
    return session


@pytest.fixture()
def _patch_session(mock_session: MagicMock) -> MagicMock:
    """Patch get_sync_session to return mock."""
    with patch("scripts.manage_keys.get_sync_session", return_value=mock_session):
        yield mock_session


def _lookup(mock_session: MagicMock, value: object) -> None:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    mock_session.execute.return_value = result


def _key_args(**overrides: object) -> argparse.Namespace:
    values: dict[str, object] = {
        "tenant": "Main Street Garage",
        "name": "website",
        "environment": "live",
        "domains": "garage.example, shop.garage.example",
        "routes": "",
        "rate_limit": 60,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestCreateTenant:
    def test_create_tenant(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """create-tenant creates tenant with correct name."""
        _lookup(mock_session, None)

        create_tenant(argparse.Namespace(name="Main Street Garage"))

        tenant: Tenant = mock_session.add.call_args[0][0]
        assert isinstance(tenant, Tenant)
        assert tenant.name == "Main Street Garage"
        mock_session.commit.assert_called_once()
        assert "Tenant created: Main Street Garage" in capsys.readouterr().out

    def test_duplicate_tenant(
        self, _patch_session: MagicMock, mock_session: MagicMock
    ) -> None:
        _lookup(mock_session, MagicMock(spec=Tenant))
        with pytest.raises(SystemExit) as exc_info:
            create_tenant(argparse.Namespace(name="Main Street Garage"))
        assert exc_info.value.code == 1
        mock_session.add.assert_not_called()


class TestCreateKey:
    def test_create_key_outputs_full_key(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """create-key prints the full key once and stores only its hash."""
        tenant = MagicMock(spec=Tenant)
        tenant.id = uuid.uuid4()
        tenant.is_active = True
        _lookup(mock_session, tenant)

        with patch("scripts.manage_keys.generate_client_key") as mock_gen:
            mock_gen.return_value = ("ck_live_" + "a" * 64, "f" * 64, "ck_live_")
            create_key(_key_args())
        mock_gen.assert_called_once_with("live")

        out = capsys.readouterr().out
        assert "ck_live_" + "a" * 64 in out
        assert "garage.example, shop.garage.example" in out
        assert "Save this key" in out

        client_key: ClientKey = mock_session.add.call_args[0][0]
        assert isinstance(client_key, ClientKey)
        assert client_key.key_hash == "f" * 64
        assert client_key.prefix == "ck_live_"
        assert client_key.authorized_domains == ["garage.example", "shop.garage.example"]
        assert client_key.allowed_routes == []
        assert client_key.rate_limit_per_minute == 60

    def test_create_key_unknown_tenant(
        self, _patch_session: MagicMock, mock_session: MagicMock
    ) -> None:
        """create-key exits with error for unknown tenant."""
        _lookup(mock_session, None)
        with pytest.raises(SystemExit) as exc_info:
            create_key(_key_args(tenant="NonExistent"))
        assert exc_info.value.code == 1

    def test_create_key_inactive_tenant(
        self, _patch_session: MagicMock, mock_session: MagicMock
    ) -> None:
        tenant = MagicMock(spec=Tenant)
        tenant.is_active = False
        _lookup(mock_session, tenant)
        with pytest.raises(SystemExit):
            create_key(_key_args())
        mock_session.add.assert_not_called()


class TestRevokeKey:
    def test_revoke_key(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """revoke-key deactivates key by id."""
        key_id = uuid.uuid4()
        key = MagicMock(spec=ClientKey)
        key.is_active = True
        mock_session.get.return_value = key

        revoke_key(argparse.Namespace(key_id=str(key_id)))

        mock_session.get.assert_called_once_with(ClientKey, key_id)
        assert key.is_active is False
        mock_session.commit.assert_called_once()
        assert f"Key revoked: {key_id}" in capsys.readouterr().out

    def test_revoke_invalid_id(self, _patch_session: MagicMock) -> None:
        with pytest.raises(SystemExit):
            revoke_key(argparse.Namespace(key_id="not-a-uuid"))

    def test_revoke_already_revoked(
        self, _patch_session: MagicMock, mock_session: MagicMock
    ) -> None:
        key = MagicMock(spec=ClientKey)
        key.is_active = False
        mock_session.get.return_value = key
        with pytest.raises(SystemExit):
            revoke_key(argparse.Namespace(key_id=str(uuid.uuid4())))
        mock_session.commit.assert_not_called()


class TestDeactivateTenant:
    def test_deactivate_revokes_keys(
        self, _patch_session: MagicMock, mock_session: MagicMock
    ) -> None:
        keys = [SimpleNamespace(is_active=True), SimpleNamespace(is_active=True)]
        tenant = SimpleNamespace(is_active=True, client_keys=keys)
        _lookup(mock_session, tenant)

        deactivate_tenant(argparse.Namespace(name="Main Street Garage"))

        assert tenant.is_active is False
        assert all(not k.is_active for k in keys)
        mock_session.commit.assert_called_once()


class TestListTenants:
    def test_list_tenants(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """list-tenants displays tenants with key counts."""
        rows = [
            SimpleNamespace(name="Main Street Garage", is_active=True, key_count=1),
            SimpleNamespace(name="Northside Motors", is_active=False, key_count=2),
        ]
        result = MagicMock()
        result.all.return_value = rows
        mock_session.execute.return_value = result

        list_tenants(argparse.Namespace())

        out = capsys.readouterr().out
        assert "Main Street Garage (active, 1 key)" in out
        assert "Northside Motors (inactive, 2 keys)" in out
