from functools import lru_cache
from typing import Generator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from campus.core.config import get_settings
from campus.core.rbac.audit import AuditRecorder, SessionAuditWriter
from campus.core.rbac.cache import DecisionCache, build_decision_cache
from campus.core.rbac.checker import PermissionGuard, get_required_permissions
from campus.core.rbac.permission_service import PermissionService
from campus.core.rbac.role_service import RoleService
from campus.core.rbac.service import RbacService
from campus.db.session import SessionLocal
from campus.db.store import SqlAlchemyPolicyStore


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal_id(request: Request) -> int:
    """
    Caller identity, set on request.state by the upstream authentication layer.
    """
    principal_id = getattr(request.state, "principal_id", None)
    if principal_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return int(principal_id)


@lru_cache
def get_audit_recorder() -> AuditRecorder:
    """Process-wide audit recorder writing through its own sessions."""
    settings = get_settings()
    return AuditRecorder(
        SessionAuditWriter(SessionLocal),
        background=settings.audit_background,
        max_workers=settings.audit_workers,
        enabled=settings.audit_enabled,
    )


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyPolicyStore:
    return SqlAlchemyPolicyStore(db)


def get_decision_cache(store: SqlAlchemyPolicyStore = Depends(get_store)) -> DecisionCache:
    return build_decision_cache(get_settings(), store)


def get_rbac_service(
    store: SqlAlchemyPolicyStore = Depends(get_store),
    cache: DecisionCache = Depends(get_decision_cache),
    auditor: AuditRecorder = Depends(get_audit_recorder),
) -> RbacService:
    return RbacService(store, cache, auditor=auditor)


def get_role_service(
    store: SqlAlchemyPolicyStore = Depends(get_store),
    cache: DecisionCache = Depends(get_decision_cache),
) -> RoleService:
    return RoleService(store, cache)


def get_permission_service(
    store: SqlAlchemyPolicyStore = Depends(get_store),
    cache: DecisionCache = Depends(get_decision_cache),
) -> PermissionService:
    return PermissionService(store, cache)


class PermissionDependency:
    """
    FastAPI dependency enforcing the permissions declared on the matched handler.

    Every caller must be identified. Handlers without declared requirements
    are open to any identified caller.

    Usage:
        router = APIRouter(dependencies=[Depends(PermissionDependency())])

        @router.get("/roles")
        @require_permission("rbac", "read")
        async def list_roles(...):
            ...
    """

    async def __call__(
        self,
        request: Request,
        principal_id: int = Depends(get_current_principal_id),
        service: RbacService = Depends(get_rbac_service),
    ) -> bool:
        route = request.scope.get("route")
        endpoint = getattr(route, "endpoint", None) or request.scope.get("endpoint")
        requirements = get_required_permissions(endpoint)
        if not requirements:
            return True

        if not PermissionGuard(service).check(principal_id, requirements):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {', '.join(str(r) for r in requirements)}",
            )
        return True


require_declared_permissions = PermissionDependency()
