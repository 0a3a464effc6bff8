"""Role management API endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from campus.api.deps import get_role_service, require_declared_permissions
from campus.api.schemas.common import MessageResponse
from campus.api.schemas.rbac import (
    AttachPermissionRequest,
    PermissionResponse,
    RoleCreate,
    RoleMutationResponse,
    RolePermissionInfo,
    RoleResponse,
    RoleUpdate,
    RoleUserResponse,
)
from campus.core.rbac import require_permission
from campus.core.rbac.role_service import RoleResult, RoleService
from campus.db.models import Role

router = APIRouter(
    prefix="/rbac",
    tags=["rbac-roles"],
    dependencies=[Depends(require_declared_permissions)],
)


def role_to_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system=role.is_system,
        is_active=role.is_active,
        created_at=role.created_at,
        updated_at=role.updated_at,
        permissions=[
            RolePermissionInfo(
                permission=PermissionResponse.model_validate(link.permission),
                conditions=link.conditions,
            )
            for link in role.role_permissions
        ],
    )


def result_to_response(result: RoleResult) -> RoleMutationResponse:
    return RoleMutationResponse(role=role_to_response(result.role), unresolved=result.unresolved)


@router.get("/roles", response_model=List[RoleResponse])
@require_permission("rbac", "read")
async def list_roles(
    include_inactive: bool = Query(False, description="Include disabled and deleted roles"),
    service: RoleService = Depends(get_role_service),
):
    """List roles with their permissions."""
    return [role_to_response(r) for r in service.list_roles(include_inactive=include_inactive)]


@router.get("/roles/{role_id}", response_model=RoleResponse)
@require_permission("rbac", "read")
async def get_role(role_id: UUID, service: RoleService = Depends(get_role_service)):
    return role_to_response(service.get_role_by_id(role_id))


@router.post("/roles", response_model=RoleMutationResponse, status_code=status.HTTP_201_CREATED)
@require_permission("rbac", "create")
async def create_role(role_data: RoleCreate, service: RoleService = Depends(get_role_service)):
    """Create a custom role. Unresolvable permission references are reported back."""
    result = service.create_role(
        role_data.name,
        description=role_data.description,
        permissions=role_data.permissions,
    )
    return result_to_response(result)


@router.put("/roles/{role_id}", response_model=RoleMutationResponse)
@require_permission("rbac", "update")
async def update_role(
    role_id: UUID,
    role_data: RoleUpdate,
    service: RoleService = Depends(get_role_service),
):
    """Update a role. A supplied permission list replaces the current one."""
    result = service.update_role(
        role_id,
        name=role_data.name,
        description=role_data.description,
        permissions=role_data.permissions,
    )
    return result_to_response(result)


@router.delete("/roles/{role_id}", response_model=MessageResponse)
@require_permission("rbac", "delete")
async def delete_role(role_id: UUID, service: RoleService = Depends(get_role_service)):
    """Soft-delete a role. System roles and roles in use cannot be deleted."""
    service.delete_role(role_id)
    return MessageResponse(message="Role deleted successfully")


@router.put("/roles/{role_id}/toggle-status", response_model=RoleResponse)
@require_permission("rbac", "update")
async def toggle_role_status(role_id: UUID, service: RoleService = Depends(get_role_service)):
    return role_to_response(service.toggle_role_status(role_id))


@router.get("/roles/{role_id}/users", response_model=List[RoleUserResponse])
@require_permission("rbac", "read")
async def list_role_users(role_id: UUID, service: RoleService = Depends(get_role_service)):
    """Users actively holding a role."""
    return [
        RoleUserResponse(
            user_id=a.user_id,
            email=a.user.email if a.user else None,
            full_name=a.user.full_name if a.user else None,
            assigned_by=a.assigned_by,
            assigned_at=a.assigned_at,
            expires_at=a.expires_at,
            context=a.context,
        )
        for a in service.users_by_role(role_id)
    ]


@router.post(
    "/roles/{role_id}/permissions/{permission_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
@require_permission("permissions", "update")
async def attach_permission(
    role_id: UUID,
    permission_id: UUID,
    body: AttachPermissionRequest = AttachPermissionRequest(),
    service: RoleService = Depends(get_role_service),
):
    service.add_permission_to_role(role_id, permission_id, conditions=body.conditions)
    return MessageResponse(message="Permission added to role successfully")


@router.delete("/roles/{role_id}/permissions/{permission_id}", response_model=MessageResponse)
@require_permission("permissions", "update")
async def detach_permission(
    role_id: UUID,
    permission_id: UUID,
    service: RoleService = Depends(get_role_service),
):
    service.remove_permission_from_role(role_id, permission_id)
    return MessageResponse(message="Permission removed from role successfully")
