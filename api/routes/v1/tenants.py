"""
api/routes/v1/tenants.py -- Tenant listing for the current principal.

Returns only the tenants the caller derives membership in through their
role assignments. No permission key is required: knowing which tenants you
belong to is not tenant-scoped data.
"""

from fastapi import APIRouter, Depends, Request

from api.models import TenantResponse
from auth.dependencies import get_current_principal
from auth.models import Principal
from rbac.store import RBACStore

# Auth policy:
# - GET /api/v1/tenants: requires an authenticated principal
router = APIRouter()


@router.get("/tenants", response_model=list[TenantResponse])
def list_my_tenants(request: Request, principal: Principal = Depends(get_current_principal)) -> list[TenantResponse]:
    """Return the distinct tenants in which the caller holds at least one role."""
    store: RBACStore = request.app.state.store
    return [TenantResponse.from_domain(t) for t in store.list_tenants_for_user(principal.user_id)]
