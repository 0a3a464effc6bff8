"""Permission management and RBAC reference data endpoints."""

from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from campus.api.deps import get_permission_service, require_declared_permissions
from campus.api.schemas.common import MessageResponse
from campus.api.schemas.rbac import (
    PermissionCreate,
    PermissionDetail,
    PermissionListItem,
    PermissionResponse,
    PermissionUpdate,
    ScopeInfo,
)
from campus.core.rbac import require_permission
from campus.core.rbac.permission_service import PermissionService

router = APIRouter(
    prefix="/rbac",
    tags=["rbac-permissions"],
    dependencies=[Depends(require_declared_permissions)],
)


@router.get("/permissions", response_model=List[PermissionListItem])
@require_permission("permissions", "read")
async def list_permissions(
    module: Optional[str] = Query(None, description="Only permissions of this module"),
    service: PermissionService = Depends(get_permission_service),
):
    return service.list_permissions(module)


@router.get("/permissions/by-module", response_model=Dict[str, List[PermissionResponse]])
@require_permission("permissions", "read")
async def permissions_by_module(service: PermissionService = Depends(get_permission_service)):
    return service.permissions_by_module()


@router.get("/permissions/{permission_id}", response_model=PermissionDetail)
@require_permission("permissions", "read")
async def get_permission(
    permission_id: UUID,
    service: PermissionService = Depends(get_permission_service),
):
    """Get a permission with the roles using it."""
    return service.get_permission_by_id(permission_id)


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
@require_permission("permissions", "create")
async def create_permission(
    data: PermissionCreate,
    service: PermissionService = Depends(get_permission_service),
):
    return service.create_permission(
        data.module,
        data.action,
        scope=data.scope,
        resource=data.resource,
        description=data.description,
    )


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
@require_permission("permissions", "update")
async def update_permission(
    permission_id: UUID,
    data: PermissionUpdate,
    service: PermissionService = Depends(get_permission_service),
):
    """Update a permission. System permissions cannot be modified."""
    return service.update_permission(permission_id, **data.model_dump(exclude_unset=True))


@router.delete("/permissions/{permission_id}", response_model=MessageResponse)
@require_permission("permissions", "delete")
async def delete_permission(
    permission_id: UUID,
    service: PermissionService = Depends(get_permission_service),
):
    """Delete a permission. Fails while any role uses it."""
    service.delete_permission(permission_id)
    return MessageResponse(message="Permission deleted successfully")


@router.post(
    "/permissions/create-standard/{module}",
    response_model=List[PermissionResponse],
    status_code=status.HTTP_201_CREATED,
)
@require_permission("permissions", "create")
async def create_standard_permissions(
    module: str,
    service: PermissionService = Depends(get_permission_service),
):
    """Create the standard create/read/update/delete permissions for a module."""
    return service.create_standard_permissions(module)


# Reference data
@router.get("/meta/modules", response_model=List[str])
@require_permission("permissions", "read")
async def list_modules():
    return PermissionService.available_modules()


@router.get("/meta/actions", response_model=List[str])
@require_permission("permissions", "read")
async def list_actions():
    return PermissionService.available_actions()


@router.get("/meta/scopes", response_model=List[ScopeInfo])
@require_permission("permissions", "read")
async def list_scopes():
    return PermissionService.available_scopes()


@router.get("/meta/modules/{module}/actions", response_model=List[str])
@require_permission("permissions", "read")
async def list_module_actions(
    module: str,
    service: PermissionService = Depends(get_permission_service),
):
    return service.actions_for_module(module)
