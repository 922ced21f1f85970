"""
rbac/store.py -- SQLAlchemy Core persistence layer for the access-control schema.

Uses SQLAlchemy Core (not ORM) so the dataclasses in rbac/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Two roles, one class:

  SchemaAccessor -- the read-only capability the checks in rbac/checks.py
      consume. It is a Protocol so tests can substitute a fake (or a store
      that raises) without touching a database. The checks never hold a
      module-level store; the handle is passed into every call.

  RBACStore -- the SQLAlchemy implementation of SchemaAccessor, plus the
      administrative reads and writes used by the HTTP layer and the CLI.
      The checks only ever call the two SchemaAccessor methods.

Pattern: Repository + Data Mapper (same as the other stores). The _row_to_*
functions translate raw rows into dataclasses.

Uniqueness (role name per tenant, one edge per user/role and role/permission
pair) is enforced by the schema. A duplicate write raises
sqlalchemy.exc.IntegrityError; callers translate it into a conflict. The
authorization gate does not serialize check-then-write, so the constraint is
the final arbiter when two identical assignments race.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, auth/, or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine

from rbac.models import (
    Permission,
    PermissionGrant,
    PermissionRecord,
    Role,
    RoleGrant,
    Tenant,
    TenantMember,
    User,
    UserRoleGrant,
)

logger = logging.getLogger("rbac.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'tenant_rbac.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tenants = Table(
    "tenants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
)

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("auth_id", String(255), nullable=False, unique=True),  # identity provider subject
    Column("email", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id"), nullable=False),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    UniqueConstraint("tenant_id", "name", name="uq_role_tenant_name"),
)

_permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("description", Text),
)

_role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("permission_id", Integer, ForeignKey("permissions.id"), nullable=False),
    PrimaryKeyConstraint("role_id", "permission_id", name="pk_role_permission"),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    PrimaryKeyConstraint("user_id", "role_id", name="pk_user_role"),
)


# ---------------------------------------------------------------------------
# Read capability consumed by rbac/checks.py
# ---------------------------------------------------------------------------


@runtime_checkable
class SchemaAccessor(Protocol):
    """Read-only queries the authorization checks depend on.

    Implementations return an empty result for "no matching rows" and raise
    for "could not query". The checks treat both as a denial, but only the
    second is logged as an error.
    """

    def user_roles_in_tenant(
        self,
        user_id: int,
        tenant_id: int,
        *,
        limit: Optional[int] = None,
        embed_permissions: bool = True,
    ) -> list[UserRoleGrant]:
        """Return the user's role edges whose role is bound to tenant_id.

        With embed_permissions, each role carries its permission edges and
        each edge its permission row. limit caps the number of role edges.
        """
        ...

    def role_tenant_id(self, role_id: int) -> object | None:
        """Return the stored tenant id of a role as-is, or None if absent."""
        ...


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RBACStore:
    """Repository for tenants, users, roles, permissions and their edges.

    Usage:
        store = RBACStore("sqlite:///:memory:")
        tenant_id = store.create_tenant(Tenant(name="Acme"))
        role_id = store.create_role(Role(tenant_id=tenant_id, name="admin"))
        store.assign_permission(role_id, store.create_permission(Permission(key="role.read")))
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so a pooled
            # connection may be used from a thread other than its creator.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # SchemaAccessor
    # ------------------------------------------------------------------

    def user_roles_in_tenant(
        self,
        user_id: int,
        tenant_id: int,
        *,
        limit: Optional[int] = None,
        embed_permissions: bool = True,
    ) -> list[UserRoleGrant]:
        """Return the user's role edges in tenant_id, optionally with permissions.

        Two queries on one connection: the tenant-filtered role edges, then
        the permission edges of exactly those roles. The tenant filter is
        applied in SQL so a role bound to another tenant never reaches the
        caller.
        """
        role_query = (
            select(_user_roles.c.role_id, _roles.c.tenant_id)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where((_user_roles.c.user_id == user_id) & (_roles.c.tenant_id == tenant_id))
            .order_by(_user_roles.c.role_id)
        )
        if limit is not None:
            role_query = role_query.limit(limit)

        with self.engine.connect() as conn:
            role_rows = conn.execute(role_query).fetchall()
            if not embed_permissions or not role_rows:
                return [
                    UserRoleGrant(role_id=r.role_id, role=RoleGrant(id=r.role_id, tenant_id=r.tenant_id))
                    for r in role_rows
                ]
            role_ids = [r.role_id for r in role_rows]
            perm_rows = conn.execute(
                select(
                    _role_permissions.c.role_id,
                    _role_permissions.c.permission_id,
                    _permissions.c.key,
                    _permissions.c.description,
                )
                .select_from(
                    _role_permissions.join(_permissions, _role_permissions.c.permission_id == _permissions.c.id)
                )
                .where(_role_permissions.c.role_id.in_(role_ids))
            ).fetchall()

        by_role: dict[int, list[PermissionGrant]] = {role_id: [] for role_id in role_ids}
        for row in perm_rows:
            by_role[row.role_id].append(
                PermissionGrant(
                    permission_id=row.permission_id,
                    permission=PermissionRecord(key=row.key, description=row.description),
                )
            )
        return [
            UserRoleGrant(
                role_id=r.role_id,
                role=RoleGrant(id=r.role_id, tenant_id=r.tenant_id, permissions=by_role[r.role_id]),
            )
            for r in role_rows
        ]

    def role_tenant_id(self, role_id: int) -> object | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(_roles.c.tenant_id).where(_roles.c.id == role_id)).fetchone()
        return row.tenant_id if row is not None else None

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    def create_tenant(self, tenant: Tenant) -> int:
        """Insert a new tenant and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(_tenants.insert().values(name=tenant.name))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_tenant(self, tenant_id: int) -> Tenant | None:
        with self.engine.connect() as conn:
            row = conn.execute(_tenants.select().where(_tenants.c.id == tenant_id)).fetchone()
        return _row_to_tenant(row) if row is not None else None

    def list_tenants_for_user(self, user_id: int) -> list[Tenant]:
        """Return the distinct tenants in which the user holds at least one role.

        Membership is derived from user_roles -> roles -> tenants; there is
        no stored membership table.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_tenants.c.id, _tenants.c.name)
                .select_from(
                    _user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id).join(
                        _tenants, _roles.c.tenant_id == _tenants.c.id
                    )
                )
                .where(_user_roles.c.user_id == user_id)
                .distinct()
                .order_by(_tenants.c.id)
            ).fetchall()
        return [_row_to_tenant(r) for r in rows]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if auth_id is already provisioned.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.insert().values(auth_id=user.auth_id, email=user.email, created_at=_now_iso()))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_user(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_auth_id(self, auth_id: str) -> User | None:
        """Resolve an identity provider subject to the provisioned user, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.auth_id == auth_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_tenant_users(self, tenant_id: int) -> list[TenantMember]:
        """Return distinct users holding at least one role bound to tenant_id."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_users.c.id, _users.c.email)
                .select_from(
                    _user_roles.join(_users, _user_roles.c.user_id == _users.c.id).join(
                        _roles, _user_roles.c.role_id == _roles.c.id
                    )
                )
                .where(_roles.c.tenant_id == tenant_id)
                .distinct()
                .order_by(_users.c.id)
            ).fetchall()
        return [TenantMember(id=int(r.id), email=r.email) for r in rows]

    def assign_role(self, user_id: int, role_id: int) -> None:
        """Insert a user_roles edge. Raises IntegrityError on a duplicate."""
        with self.engine.connect() as conn:
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
            conn.commit()

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        """Insert a new role and return its ID.

        Raises IntegrityError if the name already exists in the tenant.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(tenant_id=role.tenant_id, name=role.name, description=role.description)
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self, tenant_id: int) -> list[Role]:
        """Return all roles bound to a tenant, ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _roles.select().where(_roles.c.tenant_id == tenant_id).order_by(_roles.c.name)
            ).fetchall()
        return [_row_to_role(r) for r in rows]

    def rename_role(self, role_id: int, name: str) -> bool:
        """Rename a role. Returns False if the role does not exist.

        Raises IntegrityError if another role in the same tenant has the name.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(name=name))
            conn.commit()
        return result.rowcount > 0

    def role_has_users(self, role_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_user_roles.c.user_id).where(_user_roles.c.role_id == role_id).limit(1)).fetchone()
        return row is not None

    def delete_role(self, role_id: int) -> bool:
        """Delete a role and its permission edges. Returns False if not found.

        Callers must check role_has_users() first; user_roles edges are not
        removed here and the foreign key rejects the delete while any exist.
        """
        with self.engine.connect() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> int:
        """Insert a permission key and return its ID. Raises IntegrityError on duplicates."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _permissions.insert().values(key=permission.key, description=permission.description)
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_permission(self, permission_id: int) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.id == permission_id)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permission_by_key(self, key: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.key == key)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def list_permissions(self) -> list[Permission]:
        """Return the global permission catalog ordered by key."""
        with self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.key)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def list_role_permissions(self, role_id: int) -> list[Permission]:
        """Return the permissions attached to a role, ordered by key."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_permissions.c.id, _permissions.c.key, _permissions.c.description)
                .select_from(
                    _role_permissions.join(_permissions, _role_permissions.c.permission_id == _permissions.c.id)
                )
                .where(_role_permissions.c.role_id == role_id)
                .order_by(_permissions.c.key)
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def assign_permission(self, role_id: int, permission_id: int) -> None:
        """Insert a role_permissions edge. Raises IntegrityError on a duplicate."""
        with self.engine.connect() as conn:
            conn.execute(_role_permissions.insert().values(role_id=role_id, permission_id=permission_id))
            conn.commit()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_tenant(row) -> Tenant:
    return Tenant(id=row.id, name=row.name)


def _row_to_user(row) -> User:
    return User(id=row.id, auth_id=row.auth_id, email=row.email, created_at=row.created_at)


def _row_to_role(row) -> Role:
    return Role(id=row.id, tenant_id=row.tenant_id, name=row.name, description=row.description)


def _row_to_permission(row) -> Permission:
    return Permission(id=row.id, key=row.key, description=row.description)
