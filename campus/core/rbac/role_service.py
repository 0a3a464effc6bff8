"""Role administration.

Roles bundle permissions. System roles are immutable. Deletion is soft and
refused while the role is actively assigned. Any change to what a role
grants invalidates the decision cache of every principal holding it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from campus.core.errors import ConflictError, ForbiddenError, NotFoundError, store_errors
from campus.db.models import Permission, Role, RolePermission, UserRoleAssignment

from .cache import DecisionCache
from .permissions import PermissionIdRef, PermissionRef, parse_permission_ref
from .service import invalidate_principals, role_holder_ids
from .store import PolicyStore

logger = logging.getLogger(__name__)

PermissionRefInput = Union[str, UUID, PermissionRef]


@dataclass
class RoleResult:
    """A created or updated role plus the permission references that did not resolve."""

    role: Role
    unresolved: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


class RoleService:
    """Create, update, delete and inspect roles."""

    def __init__(self, store: PolicyStore, cache: DecisionCache):
        self.store = store
        self.cache = cache

    # -- lookups --------------------------------------------------------------

    def get_role_by_id(self, role_id: UUID) -> Role:
        role = self.store.get_role(role_id)
        if role is None or role.deleted_at is not None:
            raise NotFoundError("Role not found")
        return role

    def list_roles(self, include_inactive: bool = False) -> List[Role]:
        return self.store.list_roles(include_inactive=include_inactive)

    def users_by_role(self, role_id: UUID) -> List[UserRoleAssignment]:
        self.get_role_by_id(role_id)
        return self.store.list_role_assignments(role_id)

    def resolve_permissions(
        self, refs: Iterable[PermissionRefInput]
    ) -> Tuple[List[Permission], List[str]]:
        """
        Resolve permission references.

        Returns:
            (resolved permissions without duplicates, references that could not be resolved)
        """
        resolved: List[Permission] = []
        seen = set()
        unresolved: List[str] = []

        for raw in refs:
            try:
                ref = parse_permission_ref(raw)
            except ValueError:
                unresolved.append(str(raw))
                continue

            if isinstance(ref, PermissionIdRef):
                permission = self.store.get_permission(ref.id)
            else:
                permission = self.store.find_permission_by_key(ref.module, ref.action, ref.scope.value)

            if permission is None:
                unresolved.append(str(raw))
            elif permission.id not in seen:
                seen.add(permission.id)
                resolved.append(permission)

        return resolved, unresolved

    # -- mutations ------------------------------------------------------------

    def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        permissions: Iterable[PermissionRefInput] = (),
    ) -> RoleResult:
        """
        Create a role and attach the referenced permissions.

        Raises:
            ConflictError: A role with this name exists
        """
        with store_errors(self.store, "create role"):
            if self.store.get_role_by_name(name) is not None:
                raise ConflictError(f"Role '{name}' already exists")

            resolved, unresolved = self.resolve_permissions(permissions)
            role = self.store.add_role(Role(name=name, description=description, is_system=False))
            for permission in resolved:
                self.store.add_role_permission(role.id, permission.id)
            self.store.commit()

        if unresolved:
            logger.warning(f"Role {name} created with unresolved permission references: {unresolved}")
        logger.info(f"Created role {name} with {len(resolved)} permissions")
        return RoleResult(role=role, unresolved=unresolved)

    def update_role(
        self,
        role_id: UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permissions: Optional[Iterable[PermissionRefInput]] = None,
    ) -> RoleResult:
        """
        Update a role. A supplied permission list replaces the current set entirely.

        Raises:
            NotFoundError: Unknown role
            ForbiddenError: System role
            ConflictError: Another role already has the new name
        """
        unresolved: List[str] = []
        with store_errors(self.store, "update role"):
            role = self._get_mutable(role_id)

            if name is not None and name != role.name:
                other = self.store.get_role_by_name(name)
                if other is not None and other.id != role.id:
                    raise ConflictError(f"Role '{name}' already exists")

            # Holders under the old name still depend on this role
            holders = role_holder_ids(self.store, role)

            if name is not None:
                role.name = name
            if description is not None:
                role.description = description

            if permissions is not None:
                resolved, unresolved = self.resolve_permissions(permissions)
                self.store.clear_role_permissions(role.id)
                for permission in resolved:
                    self.store.add_role_permission(role.id, permission.id)

            holders.extend(role_holder_ids(self.store, role))
            self.store.commit()

        invalidate_principals(self.cache, holders)
        logger.info(f"Updated role {role_id}")
        return RoleResult(role=role, unresolved=unresolved)

    def delete_role(self, role_id: UUID) -> None:
        """
        Soft-delete a role.

        Raises:
            NotFoundError: Unknown role
            ForbiddenError: System role
            ConflictError: The role has active assignments
        """
        with store_errors(self.store, "delete role"):
            role = self._get_mutable(role_id)
            if self.store.count_active_assignments(role_id) > 0:
                raise ConflictError("Role has active user assignments")

            holders = role_holder_ids(self.store, role)
            role.deleted_at = datetime.utcnow()
            role.is_active = False
            self.store.commit()

        invalidate_principals(self.cache, holders)
        logger.info(f"Deleted role {role_id}")

    def toggle_role_status(self, role_id: UUID) -> Role:
        """
        Raises:
            NotFoundError: Unknown role
            ForbiddenError: System role
        """
        with store_errors(self.store, "toggle role status"):
            role = self._get_mutable(role_id)
            role.is_active = not role.is_active
            holders = role_holder_ids(self.store, role)
            self.store.commit()

        invalidate_principals(self.cache, holders)
        logger.info(f"Role {role_id} is now {'active' if role.is_active else 'inactive'}")
        return role

    def add_permission_to_role(
        self,
        role_id: UUID,
        permission_id: UUID,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> RolePermission:
        """
        Raises:
            NotFoundError: Unknown role or permission
            ForbiddenError: System role
            ConflictError: The permission is already attached
        """
        with store_errors(self.store, "add permission to role"):
            role = self._get_mutable(role_id)
            if self.store.get_permission(permission_id) is None:
                raise NotFoundError("Permission not found")
            if self.store.get_role_permission(role_id, permission_id) is not None:
                raise ConflictError("Permission is already attached to this role")

            link = self.store.add_role_permission(role_id, permission_id, conditions)
            holders = role_holder_ids(self.store, role)
            self.store.commit()

        invalidate_principals(self.cache, holders)
        logger.info(f"Attached permission {permission_id} to role {role_id}")
        return link

    def remove_permission_from_role(self, role_id: UUID, permission_id: UUID) -> None:
        """
        Raises:
            NotFoundError: Unknown role, or the permission is not attached
            ForbiddenError: System role
        """
        with store_errors(self.store, "remove permission from role"):
            role = self._get_mutable(role_id)
            link = self.store.get_role_permission(role_id, permission_id)
            if link is None:
                raise NotFoundError("Permission is not attached to this role")

            self.store.delete_role_permission(link)
            holders = role_holder_ids(self.store, role)
            self.store.commit()

        invalidate_principals(self.cache, holders)
        logger.info(f"Detached permission {permission_id} from role {role_id}")

    def _get_mutable(self, role_id: UUID) -> Role:
        role = self.get_role_by_id(role_id)
        if role.is_system:
            raise ForbiddenError("System roles cannot be modified")
        return role
