"""Database models for Campus RBAC."""

from campus.db.models.user import User
from campus.db.models.permission import Permission
from campus.db.models.role import Role, RolePermission
from campus.db.models.assignment import UserRoleAssignment
from campus.db.models.permission_cache import PermissionCacheEntry
from campus.db.models.audit import PermissionAudit

__all__ = [
    "User",
    "Permission",
    "Role",
    "RolePermission",
    "UserRoleAssignment",
    "PermissionCacheEntry",
    "PermissionAudit",
]
