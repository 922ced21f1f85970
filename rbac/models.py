"""
rbac/models.py -- Domain dataclasses for the access-control schema.

Two groups of types live here:

  Entities -- Tenant, User, Role, Permission. Pure data containers mirroring
      one row of each relation. The join relations (user_roles,
      role_permissions) have no entity type of their own; they are edges
      written through rbac/store.py.

  Grants -- the nested read shape the permission resolution engine walks:

        UserRoleGrant
          └── role: RoleGrant | None
                └── permissions: list[PermissionGrant] | None
                      └── permission: PermissionRecord | None
                            └── key: str | None

      Every nested level is optional. A store (or a test fake) may hand back
      a partially populated record and the engine must skip the missing
      parts rather than fail. Keeping the shape explicit here means the
      traversal in rbac/checks.py checks presence at each level instead of
      assuming it.

Layer rule: no imports from api/, auth/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class Tenant:
    """An isolation boundary. Every authorization decision is scoped to one."""

    name: str
    id: Optional[int] = None


@dataclass
class User:
    """A provisioned identity.

    auth_id is the external identity provider's stable subject. It is set at
    provisioning time and never updated; the store has no method to change it.
    """

    auth_id: str
    email: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Role:
    """A named bundle of permissions owned by exactly one tenant.

    name is unique within tenant_id (enforced by a UNIQUE constraint).
    """

    tenant_id: int
    name: str
    description: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Permission:
    """A global capability key such as "role.update". Not tenant-scoped."""

    key: str
    description: Optional[str] = None
    id: Optional[int] = None


# ---------------------------------------------------------------------------
# Grant shapes (read side of the resolution engine)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionRecord:
    key: Optional[str]
    description: Optional[str] = None


@dataclass(frozen=True)
class PermissionGrant:
    """One role_permissions edge with its permission row embedded."""

    permission_id: int
    permission: Optional[PermissionRecord] = None


@dataclass(frozen=True)
class RoleGrant:
    """A role row with its permission edges embedded.

    permissions is None when the edges were not requested or not returned;
    an empty list means the role genuinely has no permissions.
    """

    id: int
    tenant_id: object
    permissions: Optional[list[PermissionGrant]] = None


@dataclass(frozen=True)
class UserRoleGrant:
    """One user_roles edge with its role embedded."""

    role_id: int
    role: Optional[RoleGrant] = None


@dataclass
class TenantMember:
    """One row of GET /users -- a distinct user holding a role in the tenant."""

    id: int
    email: str
