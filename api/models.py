"""
API request and response models for the tenant-rbac REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in rbac/models.py, which
own the internal domain representation. Route handlers map between the two.

Identifier fields on request bodies are deliberately loose (int, str or
missing). Validation happens in api/guard.require_identifier so a bad id is
a 400 client error with a stable code, not a schema failure.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from rbac.models import Permission, Role, Tenant, TenantMember

_RawId = Optional[Union[int, str]]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/roles?tenantId=..."""

    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class RoleRename(BaseModel):
    """Request body for PUT /api/v1/roles/{role_id}."""

    name: Optional[str] = Field(default=None, max_length=100)


class PermissionAssign(BaseModel):
    """Request body for POST /api/v1/permissions/assign."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: _RawId = Field(default=None, alias="tenantId")
    role_id: _RawId = Field(default=None, alias="roleId")
    permission_id: _RawId = Field(default=None, alias="permissionId")


class RoleAssign(BaseModel):
    """Request body for POST /api/v1/users/assign-role."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: _RawId = Field(default=None, alias="tenantId")
    target_user_id: _RawId = Field(default=None, alias="targetUserId")
    role_id: _RawId = Field(default=None, alias="roleId")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TenantResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str

    @classmethod
    def from_domain(cls, tenant: Tenant) -> "TenantResponse":
        return cls(id=tenant.id, name=tenant.name)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    tenant_id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_domain(cls, role: Role) -> "RoleResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(id=role.id, tenant_id=role.tenant_id, name=role.name, description=role.description)


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    key: str
    description: Optional[str] = None

    @classmethod
    def from_domain(cls, permission: Permission) -> "PermissionResponse":
        return cls(id=permission.id, key=permission.key, description=permission.description)


class TenantUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str

    @classmethod
    def from_domain(cls, member: TenantMember) -> "TenantUserResponse":
        return cls(id=member.id, email=member.email)


class AssignmentResponse(BaseModel):
    """Response for the two assignment endpoints (201)."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: dict[str, int]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
