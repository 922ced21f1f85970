"""
api/routes/v1/users.py -- Tenant user listing and role assignment.

Routes:
  GET  /users?tenantId=N   -- distinct users holding a role in the tenant (user.read)
  POST /users/assign-role  -- give targetUserId the role roleId (user.assign_role)

assign-role runs the binding step of the gate: a caller authorized in one
tenant cannot hand out a role that belongs to another, even by guessing its id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.guard import enforce, error, require_identifier
from api.models import AssignmentResponse, RoleAssign, TenantUserResponse
from auth.dependencies import get_current_principal
from auth.models import Principal
from rbac.store import RBACStore

# Auth policy:
# - GET  /api/v1/users:             gate with user.read
# - POST /api/v1/users/assign-role: gate with user.assign_role + target role binding
router = APIRouter()


@router.get("/users", response_model=list[TenantUserResponse])
def list_tenant_users(
    request: Request,
    tenant_param: Optional[str] = Query(default=None, alias="tenantId"),
    principal: Principal = Depends(get_current_principal),
) -> list[TenantUserResponse]:
    tenant_id = require_identifier(tenant_param, "tenantId")
    enforce(request, principal, tenant_id, "user.read")
    store: RBACStore = request.app.state.store
    return [TenantUserResponse.from_domain(m) for m in store.list_tenant_users(tenant_id)]


@router.post("/users/assign-role", response_model=AssignmentResponse, status_code=201)
def assign_role(
    request: Request,
    body: RoleAssign,
    principal: Principal = Depends(get_current_principal),
) -> AssignmentResponse:
    """Assign roleId to targetUserId within tenantId.

    404 if the target user does not exist, 409 if they already hold the role.
    """
    tenant_id = require_identifier(body.tenant_id, "tenantId")
    target_user_id = require_identifier(body.target_user_id, "targetUserId")
    role_id = require_identifier(body.role_id, "roleId")

    enforce(request, principal, tenant_id, "user.assign_role", target_role_id=role_id)

    store: RBACStore = request.app.state.store
    if store.get_user(target_user_id) is None:
        raise error(404, "not_found", "Target user not found.")
    try:
        store.assign_role(target_user_id, role_id)
    except IntegrityError:
        raise error(409, "conflict", "Role already assigned to this user.")
    return AssignmentResponse(data={"user_id": target_user_id, "role_id": role_id})
