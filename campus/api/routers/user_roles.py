"""Role assignment and permission check endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from campus.api.deps import get_current_principal_id, get_rbac_service, require_declared_permissions
from campus.api.schemas.common import MessageResponse
from campus.api.schemas.rbac import (
    AssignmentResponse,
    AssignRoleRequest,
    EffectivePermissionResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
)
from campus.core.rbac import PermissionCheck, PermissionScope, require_permission
from campus.core.rbac.service import RbacService
from campus.db.models import UserRoleAssignment

router = APIRouter(
    prefix="/rbac",
    tags=["rbac-users"],
    dependencies=[Depends(require_declared_permissions)],
)


def assignment_to_response(assignment: UserRoleAssignment) -> AssignmentResponse:
    return AssignmentResponse(
        id=assignment.id,
        user_id=assignment.user_id,
        role_id=assignment.role_id,
        role_name=assignment.role.name if assignment.role else None,
        assigned_by=assignment.assigned_by,
        assigned_at=assignment.assigned_at,
        expires_at=assignment.expires_at,
        is_active=assignment.is_active,
        context=assignment.context,
    )


@router.post(
    "/users/{user_id}/roles/{role_id}",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
@require_permission("users", "update")
@require_permission("rbac", "assign")
async def assign_role(
    user_id: int,
    role_id: UUID,
    body: AssignRoleRequest = AssignRoleRequest(),
    principal_id: int = Depends(get_current_principal_id),
    service: RbacService = Depends(get_rbac_service),
):
    """Assign a role to a user, reactivating a previous assignment."""
    assignment = service.assign_role(
        user_id,
        role_id,
        assigned_by=principal_id,
        context=body.context,
        expires_at=body.expires_at,
    )
    return assignment_to_response(assignment)


@router.delete("/users/{user_id}/roles/{role_id}", response_model=MessageResponse)
@require_permission("users", "update")
@require_permission("rbac", "assign")
async def revoke_role(
    user_id: int,
    role_id: UUID,
    service: RbacService = Depends(get_rbac_service),
):
    """Revoke a role. Revoking an already revoked role succeeds."""
    revoked = service.revoke_role(user_id, role_id)
    return MessageResponse(message="Role revoked successfully", count=revoked)


@router.get("/users/{user_id}/roles", response_model=List[AssignmentResponse])
@require_permission("users", "read")
async def list_user_roles(user_id: int, service: RbacService = Depends(get_rbac_service)):
    return [assignment_to_response(a) for a in service.get_user_roles(user_id)]


@router.delete("/users/{user_id}/permissions-cache", response_model=MessageResponse)
@require_permission("users", "update")
async def clear_permission_cache(user_id: int, service: RbacService = Depends(get_rbac_service)):
    service.clear_permission_cache(user_id)
    return MessageResponse(message="Permission cache cleared successfully")


@router.get("/my-roles", response_model=List[AssignmentResponse])
async def my_roles(
    principal_id: int = Depends(get_current_principal_id),
    service: RbacService = Depends(get_rbac_service),
):
    """The caller's own active role assignments. No permission required."""
    return [assignment_to_response(a) for a in service.get_user_roles(principal_id)]


@router.get("/my-permissions", response_model=List[EffectivePermissionResponse])
@require_permission("permissions", "read", scope=PermissionScope.OWN)
async def my_permissions(
    principal_id: int = Depends(get_current_principal_id),
    service: RbacService = Depends(get_rbac_service),
):
    """The caller's effective permissions."""
    return [p._asdict() for p in service.get_user_permissions(principal_id)]


@router.post("/check-permission", response_model=PermissionCheckResponse)
@require_permission("permissions", "read", scope=PermissionScope.OWN)
async def check_permission(
    data: PermissionCheckRequest,
    principal_id: int = Depends(get_current_principal_id),
    service: RbacService = Depends(get_rbac_service),
):
    """Check whether the caller holds a permission."""
    check = PermissionCheck(**data.model_dump())
    return PermissionCheckResponse(
        has_permission=service.has_permission(principal_id, check),
        user_id=principal_id,
        check=check.to_dict(),
    )
