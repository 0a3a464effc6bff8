"""Permission checking utilities for Campus RBAC.

Handlers declare the permissions they require with the `require_permission`
decorator; `campus.api.deps.PermissionDependency` enforces them at request time.
"""

from typing import TYPE_CHECKING, Any, Callable, List, NamedTuple, Optional, Sequence

from .permissions import PermissionScope

if TYPE_CHECKING:
    from .service import RbacService

REQUIREMENTS_ATTR = "__rbac_requirements__"


class RequiredPermission(NamedTuple):
    """A (module, action, resource?, scope?) requirement declared by a handler."""

    module: str
    action: str
    resource: Optional[str] = None
    scope: Optional[PermissionScope] = None

    def __str__(self) -> str:
        value = f"{self.module}:{self.action}"
        if self.resource:
            value += f":{self.resource}"
        return value


def require_permission(
    module: str,
    action: str,
    *,
    resource: Optional[str] = None,
    scope: Optional[PermissionScope] = None,
):
    """
    Decorator declaring that a handler requires a permission.

    Stack it to declare alternatives: the caller needs any one of them.
    The handler itself is returned unchanged.

    Usage:
        @router.get("/roles")
        @require_permission("rbac", "read")
        async def list_roles(...):
            ...
    """
    requirement = RequiredPermission(
        module, action, resource, PermissionScope(scope) if scope else None
    )

    def decorator(func: Callable) -> Callable:
        existing = list(getattr(func, REQUIREMENTS_ATTR, []))
        # Decorators apply bottom-up; keep declaration order
        setattr(func, REQUIREMENTS_ATTR, [requirement] + existing)
        return func

    return decorator


def get_required_permissions(func: Optional[Callable]) -> List[RequiredPermission]:
    """Requirements declared on a handler (empty if none)."""
    if func is None:
        return []
    return list(getattr(func, REQUIREMENTS_ATTR, []))


class PermissionGuard:
    """Evaluates a handler's declared requirements for a principal."""

    def __init__(self, service: "RbacService"):
        self.service = service

    def check(
        self,
        principal_id: int,
        requirements: Sequence[RequiredPermission],
        **context: Any,
    ) -> bool:
        """
        Grant when no requirement is declared, otherwise when any requirement authorizes.

        An OWN-scoped requirement checks the caller's own records unless an
        owner_id is given explicitly.
        """
        if not requirements:
            return True

        for requirement in requirements:
            opts = dict(context)
            if requirement.scope == PermissionScope.OWN:
                opts.setdefault("owner_id", principal_id)
            if self.service.authorize(
                principal_id,
                requirement.module,
                requirement.action,
                resource=requirement.resource,
                **opts,
            ):
                return True
        return False
