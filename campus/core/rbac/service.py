"""RBAC service: authorization entry point and role assignment.

Ties the resolver, the decision cache and the policy store together. Any
operation that changes a principal's effective permissions invalidates that
principal's cache entry before returning, so the next authorization call
observes the change.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from campus.core.errors import ForbiddenError, InternalError, NotFoundError, store_errors
from campus.db.models import UserRoleAssignment

from .audit import AuditRecorder
from .cache import DecisionCache
from .permissions import EffectivePermission, PermissionCheck
from .resolver import AssignmentChecker, PermissionResolver
from .store import PolicyStore

logger = logging.getLogger(__name__)


def invalidate_principals(cache: DecisionCache, principal_ids: Iterable[int]) -> None:
    """
    Invalidate the cache entries of several principals.

    Raises:
        InternalError: If any entry could not be invalidated
    """
    failed = []
    for principal_id in set(principal_ids):
        try:
            cache.invalidate(principal_id)
        except Exception:
            logger.exception(f"Failed to invalidate permission cache for user {principal_id}")
            failed.append(principal_id)
    if failed:
        raise InternalError(f"Permission cache could not be cleared for users {sorted(failed)}")


def role_holder_ids(store: PolicyStore, role) -> List[int]:
    """Principals whose permissions depend on `role` (assignees and legacy label holders)."""
    holders = [a.user_id for a in store.list_role_assignments(role.id)]
    holders.extend(store.list_principal_ids_by_label(role.name))
    return holders


class RbacService:
    """
    Authorization decisions and role assignment for one unit of work.

    Args:
        store: Policy store (usually bound to the request's session)
        cache: Decision cache
        auditor: Records every decision (optional)
        assignment_checker: Evaluates ASSIGNED scope
    """

    def __init__(
        self,
        store: PolicyStore,
        cache: DecisionCache,
        auditor: Optional[AuditRecorder] = None,
        assignment_checker: Optional[AssignmentChecker] = None,
    ):
        self.store = store
        self.cache = cache
        self.resolver = PermissionResolver(
            store, cache, auditor=auditor, assignment_checker=assignment_checker
        )

    # -- decisions ------------------------------------------------------------

    def has_permission(self, principal_id: int, check: PermissionCheck) -> bool:
        return self.resolver.authorize(principal_id, check)

    def authorize(
        self,
        principal_id: int,
        module: str,
        action: str,
        *,
        resource: Optional[str] = None,
        resource_id: Optional[Any] = None,
        owner_id: Optional[int] = None,
        group_id: Optional[int] = None,
        department_id: Optional[int] = None,
    ) -> bool:
        """Return True if the principal may perform `action` on `module`. Never raises."""
        check = PermissionCheck(
            module=module,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            owner_id=owner_id,
            group_id=group_id,
            department_id=department_id,
        )
        return self.resolver.authorize(principal_id, check)

    def require_permission(self, principal_id: int, module: str, action: str, **opts) -> None:
        """
        Raises:
            ForbiddenError: If the principal is not authorized
        """
        if not self.authorize(principal_id, module, action, **opts):
            raise ForbiddenError(f"Insufficient permissions. Required: {module}:{action}")

    def get_user_permissions(self, principal_id: int) -> List[EffectivePermission]:
        try:
            return self.resolver.get_permissions(principal_id)
        except Exception as e:
            logger.exception(f"Failed to load permissions for user {principal_id}")
            raise InternalError("Could not load permissions") from e

    # -- assignments ----------------------------------------------------------

    def assign_role(
        self,
        principal_id: int,
        role_id: UUID,
        assigned_by: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserRoleAssignment:
        """
        Assign a role to a principal, reactivating a previous assignment if any.

        Raises:
            NotFoundError: Unknown principal or role
            ConflictError: A concurrent assignment won the insert
        """
        with store_errors(self.store, "assign role"):
            if not self.store.principal_exists(principal_id):
                raise NotFoundError("User not found")

            role = self.store.get_role(role_id)
            if role is None or role.deleted_at is not None:
                raise NotFoundError("Role not found")

            existing = self.store.find_assignments(principal_id, role_id)
            if existing:
                assignment = existing[0]
                assignment.is_active = True
                assignment.assigned_by = assigned_by
                assignment.assigned_at = datetime.utcnow()
                assignment.context = context
                assignment.expires_at = expires_at
            else:
                assignment = self.store.add_assignment(
                    UserRoleAssignment(
                        user_id=principal_id,
                        role_id=role_id,
                        assigned_by=assigned_by,
                        assigned_at=datetime.utcnow(),
                        is_active=True,
                        context=context,
                        expires_at=expires_at,
                    )
                )
            self.store.commit()

        invalidate_principals(self.cache, [principal_id])
        logger.info(f"Assigned role {role.name} to user {principal_id} (by {assigned_by})")
        return assignment

    def revoke_role(self, principal_id: int, role_id: UUID) -> int:
        """
        Deactivate every assignment of the role to the principal.

        Revoking an already revoked assignment succeeds and changes nothing.

        Returns:
            Number of assignments that were active before the call

        Raises:
            NotFoundError: The principal never held the role
        """
        with store_errors(self.store, "revoke role"):
            assignments = self.store.find_assignments(principal_id, role_id)
            if not assignments:
                raise NotFoundError("Role assignment not found")

            revoked = 0
            for assignment in assignments:
                if assignment.is_active:
                    assignment.is_active = False
                    revoked += 1
            self.store.commit()

        invalidate_principals(self.cache, [principal_id])
        logger.info(f"Revoked role {role_id} from user {principal_id} ({revoked} active)")
        return revoked

    def get_user_roles(self, principal_id: int) -> List[UserRoleAssignment]:
        """Active, non-expired assignments of a principal with their roles."""
        with store_errors(self.store, "load user roles"):
            if not self.store.principal_exists(principal_id):
                raise NotFoundError("User not found")
            return self.store.list_active_assignments(principal_id)

    def clear_permission_cache(self, principal_id: int) -> None:
        invalidate_principals(self.cache, [principal_id])
        logger.info(f"Cleared permission cache for user {principal_id}")
