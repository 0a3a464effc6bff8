"""Permission resolver: allow/deny decisions for a principal.

Decision algorithm:

  1. Fetch the principal's effective permissions (cache first).
  2. Walk them in order. A permission matching module/action/resource whose
     scope passes grants access immediately. A scope failure does not end
     the walk; a broader permission later in the list may still grant.
  3. Exhausting the list denies.

Any exception while loading or evaluating denies (fail-closed).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from .audit import AuditRecorder
from .cache import DecisionCache
from .permissions import EffectivePermission, PermissionCheck, PermissionScope
from .store import PolicyStore

logger = logging.getLogger(__name__)

# Context keys, with the camelCase spelling older clients stored
_GROUP_KEYS = ("group_id", "groupId")
_DEPARTMENT_KEYS = ("department_id", "departmentId")


class AssignmentChecker(Protocol):
    """Decides ASSIGNED-scope access to a specific record."""

    def is_assigned(
        self,
        principal_id: int,
        check: PermissionCheck,
        context: Dict[str, Any],
    ) -> bool:
        ...


class AllowAllAssignmentChecker:
    """
    Grants every ASSIGNED-scope check.

    Per-record assignment lookups are not implemented yet; plug a real
    AssignmentChecker into the resolver to narrow ASSIGNED permissions.
    """

    def is_assigned(
        self,
        principal_id: int,
        check: PermissionCheck,
        context: Dict[str, Any],
    ) -> bool:
        return True


def _context_value(context: Dict[str, Any], keys) -> Optional[Any]:
    for key in keys:
        value = context.get(key)
        if value is not None:
            return value
    return None


def _same_id(left: Any, right: Any) -> bool:
    # JSON context may hold "5" where the check carries 5
    return str(left) == str(right)


def merge_context(permission: EffectivePermission) -> Dict[str, Any]:
    """Role-permission conditions overlaid with the assignment context."""
    merged: Dict[str, Any] = {}
    if permission.conditions:
        merged.update(permission.conditions)
    if permission.context:
        merged.update(permission.context)
    return merged


def evaluate_scope(
    permission: EffectivePermission,
    check: PermissionCheck,
    principal_id: int,
    assignment_checker: Optional[AssignmentChecker] = None,
) -> bool:
    """Evaluate a matched permission's scope against the requested check."""
    scope = permission.scope
    context = merge_context(permission)

    if scope == PermissionScope.ALL:
        return True

    if scope == PermissionScope.OWN:
        return check.owner_id is not None and check.owner_id == principal_id

    if scope == PermissionScope.GROUP:
        group_id = _context_value(context, _GROUP_KEYS)
        if group_id is not None:
            return check.group_id is not None and _same_id(check.group_id, group_id)
        # No narrowing context: any group qualifies
        return check.group_id is not None

    if scope == PermissionScope.DEPARTMENT:
        department_id = _context_value(context, _DEPARTMENT_KEYS)
        if department_id is not None:
            return check.department_id is not None and _same_id(check.department_id, department_id)
        return check.department_id is not None

    if scope == PermissionScope.ASSIGNED:
        checker = assignment_checker or AllowAllAssignmentChecker()
        return bool(checker.is_assigned(principal_id, check, context))

    return False


def load_effective_permissions(
    store: PolicyStore,
    principal_id: int,
    now: Optional[datetime] = None,
) -> List[EffectivePermission]:
    """
    Build a principal's flat effective permission list from the policy store.

    Active, non-expired assignments contribute the permissions of their
    roles, each carrying the assignment context. Disabled or deleted roles
    contribute nothing. With no active assignment at all, the role named
    after the principal's static label is used instead.
    """
    now = now or datetime.utcnow()
    role_label = store.get_principal_role_label(principal_id)
    assignments = store.list_active_assignments(principal_id, now=now)

    permissions: List[EffectivePermission] = []

    if assignments:
        for assignment in assignments:
            role = assignment.role
            if role is None or not role.is_usable:
                continue
            for link in store.list_role_permissions(role.id):
                permissions.append(_to_effective(link, assignment.context))
        return permissions

    if role_label:
        role = store.get_role_by_name(role_label)
        if role is not None and role.is_usable:
            for link in store.list_role_permissions(role.id):
                permissions.append(_to_effective(link, None))

    return permissions


def _to_effective(link, context: Optional[Dict[str, Any]]) -> EffectivePermission:
    permission = link.permission
    scope = permission.scope
    if not isinstance(scope, PermissionScope):
        scope = PermissionScope(scope)
    return EffectivePermission(
        module=permission.module,
        action=permission.action,
        resource=permission.resource,
        scope=scope,
        conditions=link.conditions or None,
        context=context or None,
    )


class PermissionResolver:
    """
    Produces allow/deny decisions.

    Args:
        store: Policy store used on cache misses
        cache: Decision cache consulted before the store
        auditor: Receives every decision (optional)
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
        self.auditor = auditor
        self.assignment_checker = assignment_checker or AllowAllAssignmentChecker()

    def get_permissions(self, principal_id: int) -> List[EffectivePermission]:
        """Effective permissions, read through the cache. May raise on store failure."""
        try:
            cached = self.cache.get(principal_id)
        except Exception as e:
            logger.warning(f"Permission cache read failed for user {principal_id}: {e}")
            cached = None

        if cached is not None:
            return cached

        loaded_at = datetime.utcnow()
        permissions = load_effective_permissions(self.store, principal_id, now=loaded_at)

        try:
            self.cache.put(principal_id, permissions, loaded_at=loaded_at)
        except Exception as e:
            logger.warning(f"Permission cache write failed for user {principal_id}: {e}")

        return permissions

    def authorize(self, principal_id: int, check: PermissionCheck) -> bool:
        """Return True if the principal may perform the check. Never raises."""
        allowed = False
        reason = None
        try:
            allowed = self._decide(principal_id, check)
        except Exception:
            logger.exception(
                f"Permission check failed for user {principal_id} "
                f"({check.module}:{check.action}); denying"
            )
            allowed = False
            reason = "Permission check failed"

        logger.debug(
            f"User {principal_id} {check.module}:{check.action}"
            f"{'/' + check.resource if check.resource else ''} -> "
            f"{'allowed' if allowed else 'denied'}"
        )

        if self.auditor is not None:
            self.auditor.record(principal_id, check, allowed, reason)

        return allowed

    def _decide(self, principal_id: int, check: PermissionCheck) -> bool:
        for permission in self.get_permissions(principal_id):
            if not permission.matches(check):
                continue
            if evaluate_scope(permission, check, principal_id, self.assignment_checker):
                return True
        return False
