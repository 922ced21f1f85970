"""
rbac/gate.py -- The authorization gate applied before every protected operation.

Pipeline (linear, short-circuits on the first failure):

  1. Resolve the principal to an internal user id      -- caller (auth/)
  2. parse_identifier() every id taken from the request -- InvalidIdentifierError
  3. Tenant membership check     -> Decision.not_tenant_member
  4. Permission resolution       -> Decision.missing_permission
  5. Role-tenant binding check   -> Decision.cross_tenant_reference
     (only when the operation targets a role by id)
  6. Decision.allowed            -- caller performs the write

Steps 3-5 are authorize(). The order is fixed: permission resolution only
means something once membership is established, and the binding check is
what stops a caller authorized in tenant A from touching a role of tenant B
whose id they guessed.

Each call is evaluated from scratch. There is no decision cache, so two
concurrent identical writes can both be allowed; the store's uniqueness
constraints settle that race at write time.

Layer rule: imports only rbac/ modules and the stdlib.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from rbac.checks import CheckOutcome, check_membership, check_permission, check_role_binding
from rbac.store import SchemaAccessor

logger = logging.getLogger("rbac.gate")

# Largest id the store can hold (signed 64-bit INTEGER).
MAX_IDENTIFIER = 2**63 - 1
_MAX_DIGITS = len(str(MAX_IDENTIFIER))


class Decision(str, Enum):
    """Terminal states of the gate pipeline."""

    allowed = "allowed"
    not_tenant_member = "not_tenant_member"
    missing_permission = "missing_permission"
    cross_tenant_reference = "cross_tenant_reference"

    @property
    def is_allowed(self) -> bool:
        return self is Decision.allowed


class InvalidIdentifierError(ValueError):
    """A request identifier is missing or not a positive integer.

    Raised before any check runs. This is a client error, not a denial.
    """

    def __init__(self, field: str, missing: bool = False) -> None:
        self.field = field
        self.missing = missing
        reason = "is required" if missing else "must be a positive integer"
        super().__init__(f"{field} {reason}")


def parse_identifier(value: object, field: str) -> int:
    """Validate one request identifier and return it as a positive int.

    Accepts ints and plain ASCII digit strings ("12", " 12 "). None, empty
    strings and the integer zero count as missing. Anything else is invalid:
    signs, decimals, exponents ("1e9"), booleans, and values above
    MAX_IDENTIFIER. Digit strings are length-checked before conversion, so
    no input is ever expanded into an oversized integer.
    """
    if value is None or (isinstance(value, int) and not isinstance(value, bool) and value == 0):
        raise InvalidIdentifierError(field, missing=True)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidIdentifierError(field, missing=True)
        if not (text.isascii() and text.isdigit()) or len(text) > _MAX_DIGITS:
            raise InvalidIdentifierError(field)
        number = int(text)
    elif isinstance(value, int) and not isinstance(value, bool):
        number = value
    else:
        raise InvalidIdentifierError(field)
    if number <= 0 or number > MAX_IDENTIFIER:
        raise InvalidIdentifierError(field)
    return number


def authorize(
    store: SchemaAccessor,
    user_id: int,
    tenant_id: int,
    permission_key: str,
    target_role_id: Optional[int] = None,
) -> Decision:
    """Run gate steps 3-5 and return the first failing state, or allowed.

    A store failure inside a step yields that step's denial; the checks have
    already logged it, the extra warning here ties it to the decision.
    """
    outcome = check_membership(store, user_id, tenant_id)
    if outcome is not CheckOutcome.granted:
        return _deny(Decision.not_tenant_member, outcome, user_id, tenant_id, permission_key)

    outcome = check_permission(store, user_id, tenant_id, permission_key)
    if outcome is not CheckOutcome.granted:
        return _deny(Decision.missing_permission, outcome, user_id, tenant_id, permission_key)

    if target_role_id is not None:
        outcome = check_role_binding(store, target_role_id, tenant_id)
        if outcome is not CheckOutcome.granted:
            return _deny(Decision.cross_tenant_reference, outcome, user_id, tenant_id, permission_key)

    return Decision.allowed


def _deny(decision: Decision, outcome: CheckOutcome, user_id: int, tenant_id: int, permission_key: str) -> Decision:
    if outcome is CheckOutcome.store_error:
        logger.warning(
            "Denied %s for user %s in tenant %s: %s (store unavailable)",
            permission_key,
            user_id,
            tenant_id,
            decision.value,
        )
    else:
        logger.info("Denied %s for user %s in tenant %s: %s", permission_key, user_id, tenant_id, decision.value)
    return decision
