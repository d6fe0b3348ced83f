"""CLI for workshop and client key management.

Usage::

    uv run python -m scripts.manage_keys <command> [options]

Commands:
    create-tenant       Create a new workshop
    create-key          Generate a client key for a workshop
    list-tenants        List all workshops
    list-keys           List client keys for a workshop
    revoke-key          Revoke a client key by id
    deactivate-tenant   Deactivate a workshop (all keys become invalid)
"""

from __future__ import annotations

import argparse
import sys
import uuid
from collections.abc import Callable

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from access_guard.auth.keys import KEY_PREFIXES, generate_client_key
from access_guard.config import settings
from access_guard.ids import new_id
from access_guard.storage.orm import ClientKey, Tenant


def get_sync_session() -> Session:
    """Create sync session for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    engine = create_engine(settings.database_url)
    return Session(engine)


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _find_tenant(session: Session, name: str) -> Tenant:
    tenant = session.execute(
        select(Tenant).where(Tenant.name == name)
    ).scalar_one_or_none()
    if tenant is None:
        print(f"Tenant not found: {name}", file=sys.stderr)
        sys.exit(1)
    return tenant


def create_tenant(args: argparse.Namespace) -> None:
    """Create a new workshop."""
    with get_sync_session() as session:
        existing = session.execute(
            select(Tenant).where(Tenant.name == args.name)
        ).scalar_one_or_none()
        if existing is not None:
            print(f"Tenant already exists: {args.name}", file=sys.stderr)
            sys.exit(1)

        tenant = Tenant(name=args.name)
        session.add(tenant)
        session.commit()
        print(f"Tenant created: {args.name} (id: {tenant.id})")


def create_key(args: argparse.Namespace) -> None:
    """Generate a client key for a workshop."""
    with get_sync_session() as session:
        tenant = _find_tenant(session, args.tenant)
        if not tenant.is_active:
            print(f"Tenant is inactive: {args.tenant}", file=sys.stderr)
            sys.exit(1)

        full_key, key_hash, prefix = generate_client_key(args.environment)
        domains = _split(args.domains)
        client_key = ClientKey(
            id=new_id(),
            tenant_id=tenant.id,
            name=args.name,
            prefix=prefix,
            key_hash=key_hash,
            authorized_domains=domains,
            allowed_routes=_split(args.routes),
            rate_limit_per_minute=args.rate_limit,
        )
        session.add(client_key)
        session.commit()

        print(f'Client key created for "{args.tenant}":')
        print(f"   Key:      {full_key}")
        print(f"   Id:       {client_key.id}")
        print(f"   Name:     {args.name}")
        print(f"   Domains:  {', '.join(domains) or 'any'}")
        print(f"   Limit:    {args.rate_limit}/min")
        print()
        print("Save this key now -- it cannot be retrieved later!")


def list_tenants(_args: argparse.Namespace) -> None:
    """List all workshops with key counts."""
    with get_sync_session() as session:
        stmt = (
            select(
                Tenant.name,
                Tenant.is_active,
                func.count(ClientKey.id).label("key_count"),
            )
            .outerjoin(ClientKey, Tenant.id == ClientKey.tenant_id)
            .group_by(Tenant.id)
            .order_by(Tenant.name)
        )
        rows = session.execute(stmt).all()

        if not rows:
            print("No tenants found.")
            return

        print("Tenants:")
        for i, row in enumerate(rows, 1):
            status = "active" if row.is_active else "inactive"
            keys = row.key_count
            print(f"  {i}. {row.name} ({status}, {keys} key{'s' if keys != 1 else ''})")


def list_keys(args: argparse.Namespace) -> None:
    """List client keys for a workshop, newest first."""
    with get_sync_session() as session:
        tenant = _find_tenant(session, args.tenant)
        keys = (
            session.execute(
                select(ClientKey)
                .where(ClientKey.tenant_id == tenant.id)
                .order_by(ClientKey.created_at.desc())
            )
            .scalars()
            .all()
        )

        if not keys:
            print(f'No keys for "{args.tenant}".')
            return

        print(f'Keys for "{args.tenant}":')
        for i, key in enumerate(keys, 1):
            status = "active" if key.is_active else "revoked"
            domains = ",".join(key.authorized_domains) if key.authorized_domains else "any"
            print(
                f"  {i}. {key.id} {key.prefix}… [{key.name}] "
                f"domains={domains} requests={key.total_requests} {status}"
            )


def revoke_key(args: argparse.Namespace) -> None:
    """Revoke a client key by its id."""
    try:
        key_id = uuid.UUID(args.key_id)
    except ValueError:
        print(f"Invalid key id: {args.key_id}", file=sys.stderr)
        sys.exit(1)

    with get_sync_session() as session:
        key = session.get(ClientKey, key_id)
        if key is None:
            print(f"Key not found: {args.key_id}", file=sys.stderr)
            sys.exit(1)

        if not key.is_active:
            print(f"Key already revoked: {args.key_id}", file=sys.stderr)
            sys.exit(1)

        key.is_active = False
        session.commit()
        print(f"Key revoked: {args.key_id}")


def deactivate_tenant(args: argparse.Namespace) -> None:
    """Deactivate a workshop and revoke all of its keys."""
    with get_sync_session() as session:
        tenant = _find_tenant(session, args.name)
        if not tenant.is_active:
            print(f"Tenant already inactive: {args.name}", file=sys.stderr)
            sys.exit(1)

        tenant.is_active = False
        for key in tenant.client_keys:
            key.is_active = False
        session.commit()
        print(f"Tenant deactivated: {args.name}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Client key management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # create-tenant
    p = sub.add_parser("create-tenant", help="Create a new workshop")
    p.add_argument("--name", required=True, help="Workshop name")

    # create-key
    p = sub.add_parser("create-key", help="Generate client key for a workshop")
    p.add_argument("--tenant", required=True, help="Workshop name")
    p.add_argument("--name", default="default", help="Key name")
    p.add_argument(
        "--environment", choices=sorted(KEY_PREFIXES), default="test", help="Key type"
    )
    p.add_argument("--domains", default="", help="Comma-separated authorized domains")
    p.add_argument("--routes", default="", help="Comma-separated allowed route prefixes")
    p.add_argument(
        "--rate-limit",
        type=int,
        default=settings.client_key_default_rate_limit,
        help="Requests per minute",
    )

    # list-tenants
    sub.add_parser("list-tenants", help="List all workshops")

    # list-keys
    p = sub.add_parser("list-keys", help="List client keys for a workshop")
    p.add_argument("--tenant", required=True, help="Workshop name")

    # revoke-key
    p = sub.add_parser("revoke-key", help="Revoke a client key")
    p.add_argument("--key-id", required=True, help="Key id to revoke")

    # deactivate-tenant
    p = sub.add_parser("deactivate-tenant", help="Deactivate a workshop")
    p.add_argument("--name", required=True, help="Workshop name")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "create-tenant": create_tenant,
        "create-key": create_key,
        "list-tenants": list_tenants,
        "list-keys": list_keys,
        "revoke-key": revoke_key,
        "deactivate-tenant": deactivate_tenant,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
