"""
api/routes/v1/permissions.py -- Permission catalog and role-permission assignment.

Routes:
  GET  /permissions         -- global permission catalog (authentication only)
  POST /permissions/assign  -- attach a permission to a role

Assignment runs the full gate, including the role-tenant binding step: the
caller must belong to the tenant, hold permission.assign there, and the
target role must be bound to that same tenant.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.guard import enforce, error, require_identifier
from api.models import AssignmentResponse, PermissionAssign, PermissionResponse
from auth.dependencies import get_current_principal
from auth.models import Principal
from rbac.store import RBACStore

# Auth policy:
# - GET  /api/v1/permissions:        requires an authenticated principal; permissions are global
# - POST /api/v1/permissions/assign: gate with permission.assign + target role binding
router = APIRouter()


@router.get("/permissions", response_model=list[PermissionResponse])
def list_permissions(request: Request, principal: Principal = Depends(get_current_principal)) -> list[PermissionResponse]:
    """Return every permission key, ordered by key."""
    store: RBACStore = request.app.state.store
    return [PermissionResponse.from_domain(p) for p in store.list_permissions()]


@router.post("/permissions/assign", response_model=AssignmentResponse, status_code=201)
def assign_permission(
    request: Request,
    body: PermissionAssign,
    principal: Principal = Depends(get_current_principal),
) -> AssignmentResponse:
    """Attach permissionId to roleId within tenantId."""
    tenant_id = require_identifier(body.tenant_id, "tenantId")
    role_id = require_identifier(body.role_id, "roleId")
    permission_id = require_identifier(body.permission_id, "permissionId")

    enforce(request, principal, tenant_id, "permission.assign", target_role_id=role_id)

    store: RBACStore = request.app.state.store
    if store.get_permission(permission_id) is None:
        raise error(404, "not_found", "Permission not found.")
    try:
        store.assign_permission(role_id, permission_id)
    except IntegrityError:
        raise error(409, "conflict", "Permission already assigned to this role.")
    return AssignmentResponse(data={"role_id": role_id, "permission_id": permission_id})
