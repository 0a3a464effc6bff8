"""Factories for RBAC test records.

Every factory adds its record to the given session and flushes, so ids and
timestamps are available immediately. Nothing is committed. Defaults produce
unique emails and role names; pass keyword arguments to override them.

Usage::

    from tests.factories import create_user, create_role, create_permission

    def test_something(db_session):
        perm = create_permission(db_session, module="reports", action="read")
        role = create_role(db_session, name="Reporter", permissions=[perm])
        user = create_user(db_session, role="TEACHER")
        assign(db_session, user, role)
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from campus.core.rbac.permissions import PermissionScope
from campus.db.models import (
    Permission,
    Role,
    RolePermission,
    User,
    UserRoleAssignment,
)


_counter = 0


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


def create_user(
    session: Session,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
    surname: Optional[str] = None,
    role: Optional[str] = None,
    is_active: bool = True,
) -> User:
    n = _next_id()
    user = User(
        email=email or f"user{n}@campus.test",
        name=name or f"User{n}",
        surname=surname or "Test",
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.flush()
    return user


# ---------------------------------------------------------------------------
# Permission
# ---------------------------------------------------------------------------


def create_permission(
    session: Session,
    *,
    module: str = "reports",
    action: str = "read",
    scope: PermissionScope = PermissionScope.ALL,
    resource: Optional[str] = None,
    description: Optional[str] = None,
    is_system: bool = False,
) -> Permission:
    permission = Permission(
        module=module,
        action=action,
        scope=scope,
        resource=resource,
        description=description,
        is_system=is_system,
    )
    session.add(permission)
    session.flush()
    return permission


# ---------------------------------------------------------------------------
# Role
# ---------------------------------------------------------------------------


def create_role(
    session: Session,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    permissions: Iterable[Permission] = (),
    conditions: Optional[Dict[str, Any]] = None,
    is_system: bool = False,
    is_active: bool = True,
) -> Role:
    """Create a role and link the given permissions (each with `conditions`)."""
    n = _next_id()
    role = Role(
        name=name or f"Test Role {n}",
        description=description,
        is_system=is_system,
        is_active=is_active,
    )
    session.add(role)
    session.flush()

    for permission in permissions:
        session.add(
            RolePermission(role_id=role.id, permission_id=permission.id, conditions=conditions)
        )
    session.flush()
    return role


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


def assign(
    session: Session,
    user: User,
    role: Role,
    *,
    assigned_by: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None,
    expires_at: Optional[datetime] = None,
    is_active: bool = True,
) -> UserRoleAssignment:
    assignment = UserRoleAssignment(
        user_id=user.id,
        role_id=role.id,
        assigned_by=assigned_by,
        assigned_at=datetime.utcnow(),
        context=context,
        expires_at=expires_at,
        is_active=is_active,
    )
    session.add(assignment)
    session.flush()
    return assignment
