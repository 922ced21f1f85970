"""
api/routes/v1/roles.py -- Role management routes.

Routes:
  GET    /roles?tenantId=N          -- list roles in a tenant        (role.read)
  POST   /roles?tenantId=N          -- create a role in a tenant     (role.create)
  PUT    /roles/{role_id}           -- rename a role                 (role.update)
  DELETE /roles/{role_id}           -- delete an unassigned role     (role.delete)
  GET    /roles/{role_id}/permissions -- permissions of a role       (role.read)

Routes addressed by role id take the tenant from the stored role itself, so
the binding step is implicit: the gate runs against the tenant that owns
the role, never a tenant named by the caller.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.guard import enforce, error, require_identifier
from api.models import PermissionResponse, RoleCreate, RoleRename, RoleResponse
from auth.dependencies import get_current_principal
from auth.models import Principal
from rbac.models import Role
from rbac.store import RBACStore

# Auth policy:
# - every route requires an authenticated principal, then the gate with the
#   permission key listed in the module docstring
router = APIRouter()


def _clean_name(name: Optional[str]) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        raise error(400, "invalid_name", "Missing or invalid role name.")
    return trimmed


def _role_in_use() -> HTTPException:
    return error(
        400,
        "role_in_use",
        "Cannot delete role: role is assigned to users. Remove all user assignments first.",
    )


def _load_role(store: RBACStore, role_param: str) -> Role:
    role_id = require_identifier(role_param, "roleId")
    role = store.get_role(role_id)
    if role is None:
        raise error(404, "not_found", "Role not found.")
    return role


# ---------------------------------------------------------------------------
# Tenant-addressed routes
# ---------------------------------------------------------------------------


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(
    request: Request,
    tenant_param: Optional[str] = Query(default=None, alias="tenantId"),
    principal: Principal = Depends(get_current_principal),
) -> list[RoleResponse]:
    tenant_id = require_identifier(tenant_param, "tenantId")
    enforce(request, principal, tenant_id, "role.read")
    store: RBACStore = request.app.state.store
    return [RoleResponse.from_domain(r) for r in store.list_roles(tenant_id)]


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request,
    body: RoleCreate,
    tenant_param: Optional[str] = Query(default=None, alias="tenantId"),
    principal: Principal = Depends(get_current_principal),
) -> RoleResponse:
    """Create a role in the tenant. The name is trimmed and must be unique per tenant."""
    tenant_id = require_identifier(tenant_param, "tenantId")
    name = _clean_name(body.name)
    enforce(request, principal, tenant_id, "role.create")

    store: RBACStore = request.app.state.store
    try:
        role_id = store.create_role(Role(tenant_id=tenant_id, name=name, description=body.description or None))
    except IntegrityError:
        raise error(409, "conflict", "Role name already exists in this tenant.")
    return RoleResponse.from_domain(store.get_role(role_id))


# ---------------------------------------------------------------------------
# Role-addressed routes
# ---------------------------------------------------------------------------


@router.put("/roles/{role_param}", response_model=RoleResponse)
def rename_role(
    request: Request,
    role_param: str,
    body: RoleRename,
    principal: Principal = Depends(get_current_principal),
) -> RoleResponse:
    store: RBACStore = request.app.state.store
    role = _load_role(store, role_param)
    enforce(request, principal, role.tenant_id, "role.update")

    name = _clean_name(body.name)
    try:
        renamed = store.rename_role(role.id, name)
    except IntegrityError:
        raise error(409, "conflict", "Role name already exists in this tenant.")
    updated = store.get_role(role.id) if renamed else None
    if updated is None:
        # Deleted between the lookup and the write.
        raise error(404, "not_found", "Role not found.")
    return RoleResponse.from_domain(updated)


@router.delete("/roles/{role_param}", status_code=204)
def delete_role(
    request: Request,
    role_param: str,
    principal: Principal = Depends(get_current_principal),
) -> Response:
    """Delete a role. Refused with 400 while any user still holds it."""
    store: RBACStore = request.app.state.store
    role = _load_role(store, role_param)
    enforce(request, principal, role.tenant_id, "role.delete")

    if store.role_has_users(role.id):
        raise _role_in_use()
    try:
        deleted = store.delete_role(role.id)
    except IntegrityError:
        # A user was assigned after the role_has_users() check.
        raise _role_in_use()
    if not deleted:
        raise error(404, "not_found", "Role not found.")
    return Response(status_code=204)


@router.get("/roles/{role_param}/permissions", response_model=list[PermissionResponse])
def list_role_permissions(
    request: Request,
    role_param: str,
    principal: Principal = Depends(get_current_principal),
) -> list[PermissionResponse]:
    store: RBACStore = request.app.state.store
    role = _load_role(store, role_param)
    enforce(request, principal, role.tenant_id, "role.read")
    return [PermissionResponse.from_domain(p) for p in store.list_role_permissions(role.id)]
