"""RBAC schemas: permissions, roles, assignments and permission checks."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from campus.core.rbac.permissions import PermissionScope


# Permissions
class PermissionCreate(BaseModel):
    module: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    scope: PermissionScope = PermissionScope.ALL
    resource: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class PermissionUpdate(BaseModel):
    module: Optional[str] = Field(None, min_length=1, max_length=100)
    action: Optional[str] = Field(None, min_length=1, max_length=100)
    scope: Optional[PermissionScope] = None
    resource: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class PermissionResponse(BaseModel):
    id: UUID
    module: str
    action: str
    resource: Optional[str] = None
    scope: PermissionScope
    description: Optional[str] = None
    is_system: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PermissionListItem(PermissionResponse):
    roles_count: int = 0


class PermissionRoleInfo(BaseModel):
    id: UUID
    name: str
    conditions: Optional[Dict[str, Any]] = None


class PermissionDetail(PermissionResponse):
    roles: List[PermissionRoleInfo] = Field(default_factory=list)


class ScopeInfo(BaseModel):
    value: PermissionScope
    label: str
    description: str


# Roles
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: List[str] = Field(
        default_factory=list,
        description="Permission ids or module:action:SCOPE keys",
    )


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Optional[List[str]] = None


class RolePermissionInfo(BaseModel):
    permission: PermissionResponse
    conditions: Optional[Dict[str, Any]] = None


class RoleResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_system: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    permissions: List[RolePermissionInfo] = Field(default_factory=list)


class RoleMutationResponse(BaseModel):
    role: RoleResponse
    unresolved: List[str] = Field(
        default_factory=list,
        description="Permission references that could not be resolved",
    )


class AttachPermissionRequest(BaseModel):
    conditions: Optional[Dict[str, Any]] = None


# Assignments
class AssignRoleRequest(BaseModel):
    context: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("expires_at", "expiresAt")
    )


class AssignmentResponse(BaseModel):
    id: UUID
    user_id: int
    role_id: UUID
    role_name: Optional[str] = None
    assigned_by: Optional[int] = None
    assigned_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    context: Optional[Dict[str, Any]] = None


class RoleUserResponse(BaseModel):
    user_id: int
    email: Optional[str] = None
    full_name: Optional[str] = None
    assigned_by: Optional[int] = None
    assigned_at: datetime
    expires_at: Optional[datetime] = None
    context: Optional[Dict[str, Any]] = None


# Permission checks
class PermissionCheckRequest(BaseModel):
    module: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    resource: Optional[str] = None
    resource_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("resource_id", "resourceId")
    )
    owner_id: Optional[int] = Field(None, validation_alias=AliasChoices("owner_id", "ownerId"))
    group_id: Optional[int] = Field(None, validation_alias=AliasChoices("group_id", "groupId"))
    department_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("department_id", "departmentId")
    )


class PermissionCheckResponse(BaseModel):
    has_permission: bool
    user_id: int
    check: Dict[str, Any]


class EffectivePermissionResponse(BaseModel):
    module: str
    action: str
    resource: Optional[str] = None
    scope: PermissionScope
    conditions: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
