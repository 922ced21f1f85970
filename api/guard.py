"""
api/guard.py -- HTTP translation of the authorization gate.

Route handlers call, in this order:
  require_identifier()  -- gate step 2, once per id taken from the request
  enforce()             -- gate steps 3-5; raises unless Decision.allowed

Denials map to the shared ErrorResponse envelope:

  not_tenant_member       403 access_denied
  missing_permission      403 forbidden
  cross_tenant_reference  400 invalid_role

Layer rule: api/ may import from auth/, core/ and rbac/.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from api.models import ErrorDetail
from auth.models import Principal
from rbac.gate import Decision, InvalidIdentifierError, authorize, parse_identifier

_DENIALS: dict[Decision, tuple[int, str, str]] = {
    Decision.not_tenant_member: (403, "access_denied", "Access denied: user does not belong to this tenant."),
    Decision.missing_permission: (403, "forbidden", "Forbidden: missing {key} permission."),
    Decision.cross_tenant_reference: (
        400,
        "invalid_role",
        "Invalid role: role does not belong to the specified tenant.",
    ),
}


def error(status_code: int, code: str, message: str, detail: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(code=code, message=message, detail=detail).model_dump(),
    )


def require_identifier(value: object, field: str) -> int:
    """Parse a request identifier or raise HTTP 400 (missing_field / invalid_id)."""
    try:
        return parse_identifier(value, field)
    except InvalidIdentifierError as exc:
        raise error(400, "missing_field" if exc.missing else "invalid_id", str(exc)) from exc


def enforce(
    request: Request,
    principal: Principal,
    tenant_id: int,
    permission_key: str,
    target_role_id: Optional[int] = None,
) -> None:
    """Run the gate for the principal and raise the mapped HTTP error on denial."""
    decision = authorize(request.app.state.store, principal.user_id, tenant_id, permission_key, target_role_id)
    if decision.is_allowed:
        return
    status_code, code, message = _DENIALS[decision]
    raise error(status_code, code, message.format(key=permission_key), detail=decision.value)
