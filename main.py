#!/usr/bin/env python3
"""
tenant-rbac -- administration CLI for the multi-tenant RBAC store.

Usage:
  python main.py init-db
  python main.py seed
  python main.py add-tenant "Acme Corp"
  python main.py add-user 7f3c0e2a-auth-subject alice@acme.com
  python main.py add-permission role.read --description "List roles"
  python main.py add-role 1 Admin
  python main.py grant 1 role.read
  python main.py assign 1 1
  python main.py check 1 1 role.read

Environment variables:
  DATABASE_URL     SQLAlchemy URL of the store (default: SQLite file beside rbac/).
                   --database-url overrides it for a single invocation.
  IDENTITY_SECRET  Required by the settings loader unless DEBUG=true, even
                   though the CLI never verifies tokens.

The CLI writes directly to the store; it is an operator tool and does not
pass through the authorization gate, except for `check`, which prints the
gate decision for a user, tenant and permission key.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from rbac.checks import effective_permissions
from rbac.gate import Decision, InvalidIdentifierError, authorize, parse_identifier
from rbac.models import Permission, Role, Tenant, User
from rbac.store import RBACStore

logger = logging.getLogger("rbac.cli")

# Permission keys the HTTP layer checks. Seeded by `seed`.
STANDARD_PERMISSIONS: dict[str, str] = {
    "role.read": "View roles and their permissions",
    "role.create": "Create roles",
    "role.update": "Rename roles",
    "role.delete": "Delete unassigned roles",
    "permission.assign": "Attach permissions to roles",
    "user.read": "List tenant users",
    "user.assign_role": "Assign roles to users",
}

_VIEWER_PERMISSIONS = ("role.read", "user.read")

# tenant name -> [(email, role name)]
_SEED_TENANTS: dict[str, list[tuple[str, str]]] = {
    "Acme Corp": [
        ("admin@acme.com", "Admin"),
        ("john.doe@acme.com", "Viewer"),
        ("jane.smith@acme.com", "Viewer"),
    ],
    "Tech Innovations": [
        ("admin@techinnovations.com", "Admin"),
        ("developer@techinnovations.com", "Viewer"),
        ("viewer@techinnovations.com", "Viewer"),
    ],
    "Global Solutions": [
        ("manager@globalsolutions.com", "Admin"),
        ("analyst@globalsolutions.com", "Viewer"),
    ],
}


def _positive(value: str) -> int:
    """argparse type for ids -- reuses the gate's identifier rules."""
    try:
        return parse_identifier(value, "id")
    except InvalidIdentifierError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def seed(store: RBACStore) -> None:
    """Create the standard permission catalog and a demo dataset.

    Each tenant gets an Admin role holding every standard permission and a
    Viewer role holding read permissions. Permissions and users that already
    exist are reused; tenants are always created fresh.
    """
    permission_ids: dict[str, int] = {}
    for key, description in STANDARD_PERMISSIONS.items():
        existing = store.get_permission_by_key(key)
        permission_ids[key] = existing.id if existing else store.create_permission(
            Permission(key=key, description=description)
        )

    for tenant_name, members in _SEED_TENANTS.items():
        tenant_id = store.create_tenant(Tenant(name=tenant_name))
        admin_id = store.create_role(Role(tenant_id=tenant_id, name="Admin", description="Full administration"))
        viewer_id = store.create_role(Role(tenant_id=tenant_id, name="Viewer", description="Read-only access"))
        for key in STANDARD_PERMISSIONS:
            store.assign_permission(admin_id, permission_ids[key])
        for key in _VIEWER_PERMISSIONS:
            store.assign_permission(viewer_id, permission_ids[key])

        roles = {"Admin": admin_id, "Viewer": viewer_id}
        for email, role_name in members:
            user = store.get_user_by_auth_id(email)
            user_id = user.id if user else store.create_user(User(auth_id=email, email=email))
            store.assign_role(user_id, roles[role_name])
        print(f"  Seeded tenant {tenant_id}: {tenant_name} ({len(members)} users)")


def check(store: RBACStore, user_id: int, tenant_id: int, key: str, role_id: Optional[int]) -> int:
    decision = authorize(store, user_id, tenant_id, key, target_role_id=role_id)
    print(decision.value)
    if decision is Decision.allowed:
        return 0
    if decision is Decision.missing_permission:
        granted = sorted(effective_permissions(store, user_id, tenant_id))
        print(f"  effective permissions: {', '.join(granted) or '(none)'}")
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tenant-rbac",
        description="Administer tenants, roles, permissions and assignments.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py seed
  python main.py check 1 1 role.read
  python main.py --database-url sqlite:///other.db add-tenant "Acme Corp"
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("init-db", help="Create the schema if it does not exist")
    sub.add_parser("seed", help="Create the standard permissions and a demo dataset")

    p = sub.add_parser("add-tenant", help="Create a tenant")
    p.add_argument("name")

    p = sub.add_parser("add-user", help="Provision a user for an identity provider subject")
    p.add_argument("auth_id", metavar="AUTH_ID")
    p.add_argument("email")

    p = sub.add_parser("add-permission", help="Create a global permission key")
    p.add_argument("key")
    p.add_argument("--description", default=None)

    p = sub.add_parser("add-role", help="Create a role in a tenant")
    p.add_argument("tenant_id", type=_positive, metavar="TENANT_ID")
    p.add_argument("name")
    p.add_argument("--description", default=None)

    p = sub.add_parser("grant", help="Attach a permission key to a role")
    p.add_argument("role_id", type=_positive, metavar="ROLE_ID")
    p.add_argument("key")

    p = sub.add_parser("assign", help="Give a user a role")
    p.add_argument("user_id", type=_positive, metavar="USER_ID")
    p.add_argument("role_id", type=_positive, metavar="ROLE_ID")

    p = sub.add_parser("check", help="Print the gate decision for a permission key")
    p.add_argument("user_id", type=_positive, metavar="USER_ID")
    p.add_argument("tenant_id", type=_positive, metavar="TENANT_ID")
    p.add_argument("key")
    p.add_argument("--role", type=_positive, default=None, metavar="ROLE_ID", help="Also verify a target role")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not args.command:
        parser.print_help()
        return 2

    store = RBACStore(args.database_url or get_settings().database_url)
    try:
        return _dispatch(store, args)
    except IntegrityError as exc:
        logger.debug("Integrity error", exc_info=exc)
        print("  [!] Conflict: the row already exists or references a missing row.")
        return 1
    finally:
        store.close()


def _dispatch(store: RBACStore, args: argparse.Namespace) -> int:
    if args.command == "init-db":
        print("  Schema ready.")
    elif args.command == "seed":
        seed(store)
    elif args.command == "add-tenant":
        print(store.create_tenant(Tenant(name=args.name)))
    elif args.command == "add-user":
        print(store.create_user(User(auth_id=args.auth_id, email=args.email)))
    elif args.command == "add-permission":
        print(store.create_permission(Permission(key=args.key, description=args.description)))
    elif args.command == "add-role":
        if store.get_tenant(args.tenant_id) is None:
            print(f"  [!] Tenant {args.tenant_id} not found.")
            return 1
        print(store.create_role(Role(tenant_id=args.tenant_id, name=args.name.strip(), description=args.description)))
    elif args.command == "grant":
        permission = store.get_permission_by_key(args.key)
        if permission is None:
            print(f"  [!] Permission '{args.key}' not found.")
            return 1
        store.assign_permission(args.role_id, permission.id)
    elif args.command == "assign":
        store.assign_role(args.user_id, args.role_id)
    elif args.command == "check":
        return check(store, args.user_id, args.tenant_id, args.key, args.role)
    return 0


if __name__ == "__main__":
    sys.exit(main())
