"""Policy store interface consumed by the RBAC engine.

The engine never talks to the database directly. Everything it needs to read
or persist (principals, permissions, roles, role-permission links, role
assignments, cache entries and audit records) goes through a PolicyStore.
`campus.db.store.SqlAlchemyPolicyStore` is the SQLAlchemy implementation.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

if TYPE_CHECKING:
    from campus.core.rbac.audit import AuditRecord
    from campus.db.models import (
        Permission,
        PermissionCacheEntry,
        Role,
        RolePermission,
        UserRoleAssignment,
    )


class PolicyStore(ABC):
    """Abstract persistence for roles, permissions, assignments, cache and audit."""

    # -- principals ---------------------------------------------------------

    @abstractmethod
    def get_principal_role_label(self, principal_id: int) -> Optional[str]:
        """Return the principal's static role label, or None if unknown."""

    @abstractmethod
    def principal_exists(self, principal_id: int) -> bool:
        ...

    @abstractmethod
    def list_principal_ids_by_label(self, label: str) -> List[int]:
        """Principals whose static role label equals `label`."""

    # -- effective permission loading --------------------------------------

    @abstractmethod
    def list_active_assignments(
        self, principal_id: int, now: Optional[datetime] = None
    ) -> List["UserRoleAssignment"]:
        """Assignments with is_active=True and expires_at null or in the future."""

    @abstractmethod
    def get_role_by_name(self, name: str) -> Optional["Role"]:
        ...

    @abstractmethod
    def list_role_permissions(self, role_id: UUID) -> List["RolePermission"]:
        """RolePermission links of a role, each with its Permission loaded."""

    # -- permission cache ---------------------------------------------------

    @abstractmethod
    def get_cache_entry(self, principal_id: int) -> Optional["PermissionCacheEntry"]:
        ...

    @abstractmethod
    def upsert_cache_entry(
        self,
        principal_id: int,
        permissions: List[Dict[str, Any]],
        *,
        last_updated: datetime,
        expires_at: datetime,
    ) -> None:
        ...

    @abstractmethod
    def delete_cache_entry(self, principal_id: int) -> None:
        ...

    # -- audit --------------------------------------------------------------

    @abstractmethod
    def append_audit(self, record: "AuditRecord") -> None:
        ...

    # -- permissions ----------------------------------------------------------

    @abstractmethod
    def get_permission(self, permission_id: UUID) -> Optional["Permission"]:
        ...

    @abstractmethod
    def find_permission(
        self,
        module: str,
        action: str,
        resource: Optional[str],
        *,
        exclude_id: Optional[UUID] = None,
    ) -> Optional["Permission"]:
        """Find the permission holding the (module, action, resource) triple."""

    @abstractmethod
    def find_permission_by_key(self, module: str, action: str, scope: str) -> Optional["Permission"]:
        ...

    @abstractmethod
    def list_permissions(self, module: Optional[str] = None) -> List["Permission"]:
        ...

    @abstractmethod
    def add_permission(self, permission: "Permission") -> "Permission":
        ...

    @abstractmethod
    def delete_permission(self, permission: "Permission") -> None:
        ...

    @abstractmethod
    def list_permission_roles(self, permission_id: UUID) -> List["RolePermission"]:
        """RolePermission links referencing a permission, each with its Role loaded."""

    @abstractmethod
    def count_permission_roles(self, permission_id: UUID) -> int:
        ...

    # -- roles ----------------------------------------------------------------

    @abstractmethod
    def get_role(self, role_id: UUID) -> Optional["Role"]:
        ...

    @abstractmethod
    def list_roles(self, include_inactive: bool = False) -> List["Role"]:
        ...

    @abstractmethod
    def add_role(self, role: "Role") -> "Role":
        ...

    @abstractmethod
    def get_role_permission(self, role_id: UUID, permission_id: UUID) -> Optional["RolePermission"]:
        ...

    @abstractmethod
    def add_role_permission(
        self,
        role_id: UUID,
        permission_id: UUID,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> "RolePermission":
        ...

    @abstractmethod
    def delete_role_permission(self, role_permission: "RolePermission") -> None:
        ...

    @abstractmethod
    def clear_role_permissions(self, role_id: UUID) -> int:
        """Remove every permission link of a role. Returns the count removed."""

    # -- assignments ----------------------------------------------------------

    @abstractmethod
    def find_assignments(self, principal_id: int, role_id: UUID) -> List["UserRoleAssignment"]:
        """Every assignment of the role to the principal, active or not."""

    @abstractmethod
    def add_assignment(self, assignment: "UserRoleAssignment") -> "UserRoleAssignment":
        ...

    @abstractmethod
    def list_role_assignments(
        self, role_id: UUID, now: Optional[datetime] = None
    ) -> List["UserRoleAssignment"]:
        """Active, non-expired assignments of a role."""

    @abstractmethod
    def count_active_assignments(self, role_id: UUID) -> int:
        ...

    # -- unit of work ---------------------------------------------------------

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...
