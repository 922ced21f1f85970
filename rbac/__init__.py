"""rbac/ -- Multi-tenant role-based access control engine.

Public surface:
  belongs_to_tenant, role_belongs_to_tenant, has_permission  (rbac.checks)
  authorize, parse_identifier, Decision                       (rbac.gate)
  SchemaAccessor, RBACStore                                   (rbac.store)

Layer rule: rbac/ imports only stdlib + third-party libraries.
It does NOT import from api/, auth/, or core/.
"""

from rbac.checks import belongs_to_tenant, effective_permissions, has_permission, role_belongs_to_tenant
from rbac.gate import Decision, InvalidIdentifierError, authorize, parse_identifier
from rbac.store import RBACStore, SchemaAccessor

__all__ = [
    "Decision",
    "InvalidIdentifierError",
    "RBACStore",
    "SchemaAccessor",
    "authorize",
    "belongs_to_tenant",
    "effective_permissions",
    "has_permission",
    "parse_identifier",
    "role_belongs_to_tenant",
]
