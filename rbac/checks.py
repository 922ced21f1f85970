"""
rbac/checks.py -- The three authorization checks.

  belongs_to_tenant(store, user_id, tenant_id)
      True iff the user holds at least one role bound to the tenant.

  role_belongs_to_tenant(store, role_id, tenant_id)
      True iff the role exists and its stored tenant id equals tenant_id.

  has_permission(store, user_id, tenant_id, permission_key)
      True iff some role the user holds in the tenant carries a permission
      whose key equals permission_key. A set-membership test: no precedence,
      no negation, no deny-override.

Fail-closed policy:
  Each check_* function catches every exception raised by the store at its
  boundary, logs it, and reports CheckOutcome.store_error. The public bool
  functions collapse store_error and denied into False, so "could not prove"
  and "proved not" look identical to callers. Nothing in this module raises.

No caching: every call re-reads the store, so a revoked permission is
observed by the very next call.

Layer rule: imports only rbac/ modules and the stdlib.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from enum import Enum

from rbac.models import RoleGrant, UserRoleGrant
from rbac.store import SchemaAccessor

logger = logging.getLogger("rbac.checks")


class CheckOutcome(str, Enum):
    granted = "granted"
    denied = "denied"
    store_error = "store_error"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_id(value: object) -> int | None:
    """Coerce a stored identifier to int, or None if it is not one.

    Stores may return ids as int, str or Decimal depending on driver and
    column type. Integral values in any of those forms compare equal once
    normalized; fractional, non-finite, boolean or non-numeric values do not
    normalize at all. Request input goes through rbac.gate.parse_identifier,
    never through here.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _bound_roles(grants: Iterable[UserRoleGrant] | None, tenant_id: int | None) -> Iterable[RoleGrant]:
    """Yield the roles of grants that are bound to tenant_id.

    Grants without a role, and roles bound to any other tenant, are skipped
    even if the store returned them.
    """
    if tenant_id is None:
        return
    for grant in grants or ():
        if grant is None or grant.role is None:
            continue
        if normalize_id(grant.role.tenant_id) == tenant_id:
            yield grant.role


def _iter_keys(grants: Iterable[UserRoleGrant] | None, tenant_id: int | None) -> Iterable[str]:
    """Yield every permission key reachable from grants bound to tenant_id.

    Missing levels (no permission list, no permission row, no key) are
    skipped as if empty.
    """
    for role in _bound_roles(grants, tenant_id):
        if not role.permissions:
            continue
        for edge in role.permissions:
            if edge is None or edge.permission is None:
                continue
            key = edge.permission.key
            if isinstance(key, str):
                yield key


# ---------------------------------------------------------------------------
# Tenant membership
# ---------------------------------------------------------------------------


def check_membership(store: SchemaAccessor, user_id: int, tenant_id: int) -> CheckOutcome:
    try:
        rows = store.user_roles_in_tenant(user_id, tenant_id, limit=1, embed_permissions=False)
        found = any(True for _ in _bound_roles(rows, normalize_id(tenant_id)))
    except Exception:
        logger.exception("Tenant membership check failed (user_id=%s tenant_id=%s)", user_id, tenant_id)
        return CheckOutcome.store_error
    return CheckOutcome.granted if found else CheckOutcome.denied


def belongs_to_tenant(store: SchemaAccessor, user_id: int, tenant_id: int) -> bool:
    """Return True iff the user holds at least one role bound to tenant_id."""
    return check_membership(store, user_id, tenant_id) is CheckOutcome.granted


# ---------------------------------------------------------------------------
# Role-tenant binding
# ---------------------------------------------------------------------------


def check_role_binding(store: SchemaAccessor, role_id: int, tenant_id: int) -> CheckOutcome:
    try:
        stored = store.role_tenant_id(role_id)
    except Exception:
        logger.exception("Role tenant verification failed (role_id=%s tenant_id=%s)", role_id, tenant_id)
        return CheckOutcome.store_error
    if stored is None:
        return CheckOutcome.denied
    stored_id = normalize_id(stored)
    if stored_id is None:
        logger.error("Role %s has a malformed tenant_id %r", role_id, stored)
        return CheckOutcome.store_error
    expected = normalize_id(tenant_id)
    if expected is None or stored_id != expected:
        return CheckOutcome.denied
    return CheckOutcome.granted


def role_belongs_to_tenant(store: SchemaAccessor, role_id: int, tenant_id: int) -> bool:
    """Return True only when the role exists and is bound to tenant_id."""
    return check_role_binding(store, role_id, tenant_id) is CheckOutcome.granted


# ---------------------------------------------------------------------------
# Permission resolution
# ---------------------------------------------------------------------------


def check_permission(store: SchemaAccessor, user_id: int, tenant_id: int, permission_key: str) -> CheckOutcome:
    """Resolve permission_key for (user_id, tenant_id).

    Does not check tenant membership itself. Because the store filters roles
    to the tenant, a non-member sees an empty permission set anyway; the gate
    still runs the membership check first so callers get the finer denial
    reason.
    """
    if not isinstance(permission_key, str) or not permission_key:
        return CheckOutcome.denied
    try:
        grants = store.user_roles_in_tenant(user_id, tenant_id)
        for key in _iter_keys(grants, normalize_id(tenant_id)):
            if key == permission_key:
                return CheckOutcome.granted
    except Exception:
        logger.exception(
            "Permission check failed (user_id=%s tenant_id=%s key=%s)",
            user_id,
            tenant_id,
            permission_key,
        )
        return CheckOutcome.store_error
    return CheckOutcome.denied


def has_permission(store: SchemaAccessor, user_id: int, tenant_id: int, permission_key: str) -> bool:
    """Return True iff the user's effective permission set in the tenant contains the key."""
    return check_permission(store, user_id, tenant_id, permission_key) is CheckOutcome.granted


def effective_permissions(store: SchemaAccessor, user_id: int, tenant_id: int) -> frozenset[str]:
    """Return the union of permission keys over every role the user holds in the tenant.

    Empty on store failure, like the other checks.
    """
    try:
        return frozenset(_iter_keys(store.user_roles_in_tenant(user_id, tenant_id), normalize_id(tenant_id)))
    except Exception:
        logger.exception("Effective permission lookup failed (user_id=%s tenant_id=%s)", user_id, tenant_id)
        return frozenset()
