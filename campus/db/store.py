"""SQLAlchemy implementation of the policy store."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from campus.core.rbac.audit import AuditRecord
from campus.core.rbac.store import PolicyStore
from campus.db.models import (
    Permission,
    PermissionAudit,
    PermissionCacheEntry,
    Role,
    RolePermission,
    User,
    UserRoleAssignment,
)


class SqlAlchemyPolicyStore(PolicyStore):
    """Policy store over a SQLAlchemy session. One instance per request/session."""

    def __init__(self, db: Session):
        self.db = db

    # -- principals ---------------------------------------------------------

    def get_principal_role_label(self, principal_id: int) -> Optional[str]:
        row = self.db.query(User.role).filter(User.id == principal_id).first()
        return row[0] if row else None

    def principal_exists(self, principal_id: int) -> bool:
        return self.db.query(User.id).filter(User.id == principal_id).first() is not None

    def list_principal_ids_by_label(self, label: str) -> List[int]:
        return [row[0] for row in self.db.query(User.id).filter(User.role == label).all()]

    # -- effective permission loading --------------------------------------

    def list_active_assignments(
        self, principal_id: int, now: Optional[datetime] = None
    ) -> List[UserRoleAssignment]:
        now = now or datetime.utcnow()
        return (
            self.db.query(UserRoleAssignment)
            .options(joinedload(UserRoleAssignment.role))
            .filter(
                and_(
                    UserRoleAssignment.user_id == principal_id,
                    UserRoleAssignment.is_active == True,
                    or_(
                        UserRoleAssignment.expires_at.is_(None),
                        UserRoleAssignment.expires_at > now,
                    ),
                )
            )
            .order_by(UserRoleAssignment.assigned_at.asc())
            .all()
        )

    def get_role_by_name(self, name: str) -> Optional[Role]:
        return self.db.query(Role).filter(Role.name == name).first()

    def list_role_permissions(self, role_id: UUID) -> List[RolePermission]:
        return (
            self.db.query(RolePermission)
            .options(joinedload(RolePermission.permission))
            .filter(RolePermission.role_id == role_id)
            .order_by(RolePermission.created_at.asc())
            .all()
        )

    # -- permission cache ---------------------------------------------------

    def get_cache_entry(self, principal_id: int) -> Optional[PermissionCacheEntry]:
        return self.db.get(PermissionCacheEntry, principal_id)

    def upsert_cache_entry(
        self,
        principal_id: int,
        permissions: List[Dict[str, Any]],
        *,
        last_updated: datetime,
        expires_at: datetime,
    ) -> None:
        try:
            entry = self.db.get(PermissionCacheEntry, principal_id)
            if entry is None:
                entry = PermissionCacheEntry(user_id=principal_id)
                self.db.add(entry)
            entry.permissions = permissions
            entry.last_updated = last_updated
            entry.expires_at = expires_at
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def delete_cache_entry(self, principal_id: int) -> None:
        try:
            entry = self.db.get(PermissionCacheEntry, principal_id)
            if entry is not None:
                self.db.delete(entry)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # -- audit --------------------------------------------------------------

    def append_audit(self, record: AuditRecord) -> None:
        try:
            self.db.add(
                PermissionAudit.create_entry(
                    user_id=record.principal_id,
                    action=record.action,
                    module=record.module,
                    allowed=record.allowed,
                    resource=record.resource,
                    resource_id=record.resource_id,
                    reason=record.reason,
                    created_at=record.created_at,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # -- permissions ----------------------------------------------------------

    def get_permission(self, permission_id: UUID) -> Optional[Permission]:
        return self.db.get(Permission, permission_id)

    def find_permission(
        self,
        module: str,
        action: str,
        resource: Optional[str],
        *,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Permission]:
        resource_clause = (
            Permission.resource.is_(None) if resource is None else Permission.resource == resource
        )
        query = self.db.query(Permission).filter(
            and_(Permission.module == module, Permission.action == action, resource_clause)
        )
        if exclude_id is not None:
            query = query.filter(Permission.id != exclude_id)
        return query.first()

    def find_permission_by_key(self, module: str, action: str, scope: str) -> Optional[Permission]:
        return (
            self.db.query(Permission)
            .filter(
                and_(
                    Permission.module == module,
                    Permission.action == action,
                    Permission.scope == scope,
                )
            )
            .order_by(Permission.resource.is_not(None), Permission.created_at.asc())
            .first()
        )

    def list_permissions(self, module: Optional[str] = None) -> List[Permission]:
        query = self.db.query(Permission)
        if module:
            query = query.filter(Permission.module == module)
        return query.order_by(
            Permission.module.asc(), Permission.action.asc(), Permission.resource.asc()
        ).all()

    def add_permission(self, permission: Permission) -> Permission:
        self.db.add(permission)
        self.db.flush()
        return permission

    def delete_permission(self, permission: Permission) -> None:
        self.db.delete(permission)
        self.db.flush()

    def list_permission_roles(self, permission_id: UUID) -> List[RolePermission]:
        return (
            self.db.query(RolePermission)
            .options(joinedload(RolePermission.role))
            .filter(RolePermission.permission_id == permission_id)
            .all()
        )

    def count_permission_roles(self, permission_id: UUID) -> int:
        return (
            self.db.query(func.count(RolePermission.id))
            .filter(RolePermission.permission_id == permission_id)
            .scalar()
        )

    # -- roles ----------------------------------------------------------------

    def get_role(self, role_id: UUID) -> Optional[Role]:
        return self.db.get(Role, role_id)

    def list_roles(self, include_inactive: bool = False) -> List[Role]:
        query = self.db.query(Role)
        if not include_inactive:
            query = query.filter(and_(Role.deleted_at.is_(None), Role.is_active == True))
        return query.order_by(Role.is_system.desc(), Role.created_at.asc()).all()

    def add_role(self, role: Role) -> Role:
        self.db.add(role)
        self.db.flush()
        return role

    def get_role_permission(self, role_id: UUID, permission_id: UUID) -> Optional[RolePermission]:
        return (
            self.db.query(RolePermission)
            .filter(
                and_(
                    RolePermission.role_id == role_id,
                    RolePermission.permission_id == permission_id,
                )
            )
            .first()
        )

    def add_role_permission(
        self,
        role_id: UUID,
        permission_id: UUID,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> RolePermission:
        link = RolePermission(role_id=role_id, permission_id=permission_id, conditions=conditions)
        self.db.add(link)
        self.db.flush()
        return link

    def delete_role_permission(self, role_permission: RolePermission) -> None:
        self.db.delete(role_permission)
        self.db.flush()

    def clear_role_permissions(self, role_id: UUID) -> int:
        links = self.db.query(RolePermission).filter(RolePermission.role_id == role_id).all()
        for link in links:
            self.db.delete(link)
        removed = len(links)
        self.db.flush()
        # Reload the collection on next access
        role = self.db.get(Role, role_id)
        if role is not None:
            self.db.expire(role, ["role_permissions"])
        return removed

    # -- assignments ----------------------------------------------------------

    def find_assignments(self, principal_id: int, role_id: UUID) -> List[UserRoleAssignment]:
        return (
            self.db.query(UserRoleAssignment)
            .filter(
                and_(
                    UserRoleAssignment.user_id == principal_id,
                    UserRoleAssignment.role_id == role_id,
                )
            )
            .all()
        )

    def add_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def list_role_assignments(
        self, role_id: UUID, now: Optional[datetime] = None
    ) -> List[UserRoleAssignment]:
        now = now or datetime.utcnow()
        return (
            self.db.query(UserRoleAssignment)
            .options(
                joinedload(UserRoleAssignment.user),
                joinedload(UserRoleAssignment.assigner),
            )
            .filter(
                and_(
                    UserRoleAssignment.role_id == role_id,
                    UserRoleAssignment.is_active == True,
                    or_(
                        UserRoleAssignment.expires_at.is_(None),
                        UserRoleAssignment.expires_at > now,
                    ),
                )
            )
            .order_by(UserRoleAssignment.assigned_at.asc())
            .all()
        )

    def count_active_assignments(self, role_id: UUID) -> int:
        return (
            self.db.query(func.count(UserRoleAssignment.id))
            .filter(
                and_(
                    UserRoleAssignment.role_id == role_id,
                    UserRoleAssignment.is_active == True,
                )
            )
            .scalar()
        )

    # -- unit of work ---------------------------------------------------------

    def flush(self) -> None:
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
