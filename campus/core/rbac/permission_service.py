"""Permission administration.

A permission is identified by its (module, action, resource) triple: no two
administered permissions may share one. System permissions come from seeding
and cannot be edited or deleted.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from campus.core.errors import ConflictError, ForbiddenError, NotFoundError, store_errors
from campus.db.models import Permission

from .cache import DecisionCache
from .permissions import SCOPE_DESCRIPTIONS, SCOPE_LABELS, PermissionScope
from .roles import MODULES, SPECIAL_PERMISSIONS, STANDARD_ACTIONS, describe_permission
from .service import invalidate_principals, role_holder_ids
from .store import PolicyStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("module", "action", "resource", "scope", "description")


def permission_to_dict(permission: Permission) -> Dict[str, Any]:
    scope = permission.scope
    return {
        "id": permission.id,
        "module": permission.module,
        "action": permission.action,
        "resource": permission.resource,
        "scope": scope.value if isinstance(scope, PermissionScope) else scope,
        "description": permission.description,
        "is_system": permission.is_system,
        "created_at": permission.created_at,
        "updated_at": permission.updated_at,
    }


class PermissionService:
    """Create, update, delete and list permissions."""

    def __init__(self, store: PolicyStore, cache: Optional[DecisionCache] = None):
        self.store = store
        self.cache = cache

    def _get_or_404(self, permission_id: UUID) -> Permission:
        permission = self.store.get_permission(permission_id)
        if permission is None:
            raise NotFoundError("Permission not found")
        return permission

    def create_permission(
        self,
        module: str,
        action: str,
        scope: PermissionScope = PermissionScope.ALL,
        resource: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Permission:
        """
        Raises:
            ConflictError: A permission with the same module/action/resource exists
        """
        scope = PermissionScope(scope)
        with store_errors(self.store, "create permission"):
            if self.store.find_permission(module, action, resource) is not None:
                raise ConflictError(
                    f"Permission {module}:{action}"
                    f"{':' + resource if resource else ''} already exists"
                )
            permission = self.store.add_permission(
                Permission(
                    module=module,
                    action=action,
                    resource=resource,
                    scope=scope,
                    description=description,
                    is_system=False,
                )
            )
            self.store.commit()

        logger.info(f"Created permission {module}:{action} ({scope.value})")
        return permission

    def update_permission(self, permission_id: UUID, **fields: Any) -> Permission:
        """
        Update any of module, action, resource, scope and description.

        Raises:
            NotFoundError: Unknown permission
            ForbiddenError: System permission
            ConflictError: The new triple collides with another permission
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown permission fields: {', '.join(sorted(unknown))}")

        with store_errors(self.store, "update permission"):
            permission = self._get_or_404(permission_id)
            if permission.is_system:
                raise ForbiddenError("System permissions cannot be modified")

            module = fields.get("module", permission.module)
            action = fields.get("action", permission.action)
            resource = fields.get("resource", permission.resource)
            if (module, action, resource) != (permission.module, permission.action, permission.resource):
                if self.store.find_permission(module, action, resource, exclude_id=permission.id):
                    raise ConflictError(f"Permission {module}:{action} already exists")

            for name, value in fields.items():
                if name == "scope":
                    value = PermissionScope(value)
                setattr(permission, name, value)

            holders = self._holders_of(permission.id)
            self.store.commit()

        self._invalidate(holders)
        logger.info(f"Updated permission {permission_id}")
        return permission

    def delete_permission(self, permission_id: UUID) -> None:
        """
        Raises:
            NotFoundError: Unknown permission
            ForbiddenError: System permission
            ConflictError: The permission is attached to a role
        """
        with store_errors(self.store, "delete permission"):
            permission = self._get_or_404(permission_id)
            if permission.is_system:
                raise ForbiddenError("System permissions cannot be deleted")
            if self.store.count_permission_roles(permission_id) > 0:
                raise ConflictError("Permission is used by one or more roles")
            self.store.delete_permission(permission)
            self.store.commit()

        logger.info(f"Deleted permission {permission_id}")

    def get_permission_by_id(self, permission_id: UUID) -> Dict[str, Any]:
        """Permission fields plus the roles that use it."""
        permission = self._get_or_404(permission_id)
        data = permission_to_dict(permission)
        data["roles"] = [
            {"id": link.role.id, "name": link.role.name, "conditions": link.conditions}
            for link in self.store.list_permission_roles(permission_id)
        ]
        return data

    def list_permissions(self, module: Optional[str] = None) -> List[Dict[str, Any]]:
        """Permissions ordered by module, action and resource, with role counts."""
        result = []
        for permission in self.store.list_permissions(module):
            data = permission_to_dict(permission)
            data["roles_count"] = self.store.count_permission_roles(permission.id)
            result.append(data)
        return result

    def permissions_by_module(self) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for permission in self.store.list_permissions():
            grouped.setdefault(permission.module, []).append(permission_to_dict(permission))
        return grouped

    def actions_for_module(self, module: str) -> List[str]:
        return sorted({p.action for p in self.store.list_permissions(module)})

    def create_standard_permissions(self, module: str) -> List[Permission]:
        """
        Create the standard create/read/update/delete permissions for a module.

        Each action gets its broadest seeded scope. Actions that already have
        a permission on the module are skipped.
        """
        created: List[Permission] = []
        with store_errors(self.store, "create standard permissions"):
            for action, scopes in STANDARD_ACTIONS.items():
                if self.store.find_permission(module, action, None) is not None:
                    continue
                scope = scopes[0]
                created.append(
                    self.store.add_permission(
                        Permission(
                            module=module,
                            action=action,
                            scope=scope,
                            description=describe_permission(module, action, scope),
                            is_system=False,
                        )
                    )
                )
            self.store.commit()

        logger.info(f"Created {len(created)} standard permissions for module {module}")
        return created

    def can_manage_permission(self, permission_id: UUID) -> bool:
        permission = self.store.get_permission(permission_id)
        return permission is not None and not permission.is_system

    # -- reference data -------------------------------------------------------

    @staticmethod
    def available_modules() -> List[str]:
        return list(MODULES)

    @staticmethod
    def available_actions() -> List[str]:
        actions = list(STANDARD_ACTIONS)
        for spec in SPECIAL_PERMISSIONS:
            if spec.action not in actions:
                actions.append(spec.action)
        return actions

    @staticmethod
    def available_scopes() -> List[Dict[str, str]]:
        return [
            {
                "value": scope.value,
                "label": SCOPE_LABELS[scope],
                "description": SCOPE_DESCRIPTIONS[scope],
            }
            for scope in PermissionScope
        ]

    # -- cache ----------------------------------------------------------------

    def _holders_of(self, permission_id: UUID) -> List[int]:
        if self.cache is None:
            return []
        holders: List[int] = []
        for link in self.store.list_permission_roles(permission_id):
            holders.extend(role_holder_ids(self.store, link.role))
        return holders

    def _invalidate(self, holders: List[int]) -> None:
        if self.cache is not None and holders:
            invalidate_principals(self.cache, holders)
