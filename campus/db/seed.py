"""Database seeding for Campus RBAC.

Creates the system permission catalogue and the default roles, and assigns
existing users the default role matching their static role label. Every
step is idempotent.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from campus.core.rbac.cache import DecisionCache
from campus.core.rbac.permissions import PermissionScope, WILDCARD
from campus.core.rbac.roles import DEFAULT_ROLES, all_permission_specs, parse_pattern
from campus.db.models import (
    Permission,
    PermissionCacheEntry,
    Role,
    RolePermission,
    User,
    UserRoleAssignment,
)

logger = logging.getLogger(__name__)


def seed_permissions(db: Session) -> Dict[str, Permission]:
    """
    Create the system permissions.

    Existing (module, action, scope) permissions are kept as they are.

    Returns:
        Dict mapping "module:action:SCOPE" to Permission
    """
    seeded: Dict[str, Permission] = {}
    created = 0

    for spec in all_permission_specs():
        key = f"{spec.module}:{spec.action}:{spec.scope.value}"
        existing = db.query(Permission).filter(
            and_(
                Permission.module == spec.module,
                Permission.action == spec.action,
                Permission.scope == spec.scope,
                Permission.resource.is_(None),
            )
        ).first()

        if existing:
            seeded[key] = existing
            continue

        permission = Permission(
            module=spec.module,
            action=spec.action,
            scope=spec.scope,
            description=spec.description,
            is_system=True,
        )
        db.add(permission)
        seeded[key] = permission
        created += 1

    db.flush()
    logger.info(f"Seeded {created} permissions ({len(seeded)} total)")
    return seeded


def expand_pattern(db: Session, pattern: str) -> List[Permission]:
    """Permissions matched by a "module:action:SCOPE" role pattern."""
    module, action, scope = parse_pattern(pattern)

    query = db.query(Permission)
    if module == WILDCARD and action == WILDCARD:
        # The global wildcard permission itself, not every permission
        return query.filter(
            and_(Permission.module == WILDCARD, Permission.action == WILDCARD)
        ).all()

    if module != WILDCARD:
        query = query.filter(Permission.module == module)
    if action != WILDCARD:
        query = query.filter(Permission.action == action)
    if scope != WILDCARD:
        query = query.filter(Permission.scope == PermissionScope(scope))
    return query.all()


def seed_default_roles(db: Session) -> Dict[str, Role]:
    """
    Create or refresh the default system roles.

    A role's permission set is rebuilt from its patterns on every run.

    Returns:
        Dict mapping role key to Role object
    """
    roles: Dict[str, Role] = {}

    for role_key, role_config in DEFAULT_ROLES.items():
        role = db.query(Role).filter(Role.name == role_config["name"]).first()
        if role is None:
            role = Role(name=role_config["name"])
            db.add(role)
        role.description = role_config["description"]
        role.is_system = role_config["is_system"]
        role.is_active = True
        role.deleted_at = None
        db.flush()

        db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
            synchronize_session=False
        )
        db.expire(role, ["role_permissions"])

        attached = set()
        for pattern in role_config["permissions"]:
            for permission in expand_pattern(db, pattern):
                if permission.id in attached:
                    continue
                attached.add(permission.id)
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))

        db.flush()
        roles[role_key] = role
        logger.info(f"Seeded role {role.name} with {len(attached)} permissions")

    return roles


def assign_default_roles(db: Session, assigned_by: Optional[int] = None) -> int:
    """
    Assign every user the default role named by their static role label.

    Users already holding that role actively are skipped.

    Returns:
        Number of assignments created or reactivated
    """
    count = 0
    for user in db.query(User).filter(User.is_active == True).all():
        role_config = DEFAULT_ROLES.get((user.role or "").upper())
        if not role_config:
            continue

        role = db.query(Role).filter(Role.name == role_config["name"]).first()
        if role is None:
            continue

        assignment = db.query(UserRoleAssignment).filter(
            and_(UserRoleAssignment.user_id == user.id, UserRoleAssignment.role_id == role.id)
        ).first()

        if assignment is None:
            db.add(
                UserRoleAssignment(
                    user_id=user.id,
                    role_id=role.id,
                    assigned_by=assigned_by,
                    is_active=True,
                )
            )
        elif not assignment.is_active:
            assignment.is_active = True
            assignment.assigned_by = assigned_by
        else:
            continue

        count += 1
        logger.info(f"Assigned role {role.name} to {user.email}")

    db.flush()
    return count

def clear_permission_cache(db: Session) -> int:
    """Delete every cached permission set. Returns the number of rows removed."""
    entries = db.query(PermissionCacheEntry).all()
    for entry in entries:
        db.delete(entry)
    db.flush()
    logger.info(f"Cleared {len(entries)} cached permission sets")
    return len(entries)


def seed_all(db: Session, cache: Optional[DecisionCache] = None) -> None:
    """
    Seed permissions, roles and default assignments, then commit.

    Role permission sets and assignments may change, so the cache table is
    cleared in the same transaction. An external `cache` (memory or Redis)
    is invalidated for every user once the commit has succeeded.
    """
    seed_permissions(db)
    seed_default_roles(db)
    assign_default_roles(db)
    clear_permission_cache(db)
    db.commit()

    if cache is not None:
        for (user_id,) in db.query(User.id).all():
            cache.invalidate(user_id)


if __name__ == "__main__":
    from campus.core.config import get_settings
    from campus.core.logger import configure_logging
    from campus.core.rbac.cache import build_decision_cache
    from campus.db.session import SessionLocal
    from campus.db.store import SqlAlchemyPolicyStore

    settings = get_settings()
    configure_logging(settings)

    session = SessionLocal()
    try:
        # The database backend is the table seed_all already clears
        cache = None
        if settings.permission_cache_backend != "database":
            cache = build_decision_cache(settings, SqlAlchemyPolicyStore(session))
        seed_all(session, cache)
    finally:
        session.close()
