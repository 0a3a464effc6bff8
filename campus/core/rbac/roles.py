"""Default permission catalogue and role definitions for Campus RBAC.

Defines the 7 standard roles with their permission patterns:
1. Super Administrator - Full system access
2. Administrator - User, group, system and report administration
3. Teacher - Own lessons and materials, read access to their groups
4. Student - Group learning materials and own homework
5. Parent - Records assigned to them (their children)
6. HR Manager - Staff management
7. Financist - Payments and financial reports

Role permissions are written as "module:action:SCOPE" patterns; "*" in any
position expands to every seeded value for that position.
"""

from typing import Dict, List, NamedTuple, Tuple

from .permissions import PermissionScope, WILDCARD


# Modules seeded with the standard action set
MODULES: List[str] = [
    "students",
    "teachers",
    "lessons",
    "homework",
    "schedule",
    "groups",
    "materials",
    "quiz",
    "payments",
    "reports",
    "notifications",
    "calendar",
    "chat",
    "tasks",
    "users",
    "system",
    "rbac",
    "budget",
    "classrooms",
    "files",
    "ai-assistant",
    "feedback",
    "lesson-results",
    "inventory",
    "performance",
    "kpi",
    "loyalty",
    "supply",
    "salaries",
    "vacations",
    "workload",
    "edo",
    "activity-monitoring",
    "branding",
    "integrations",
    "security",
    "journal",
    "study-plans",
    "dashboard",
]

# action -> scopes seeded for it
STANDARD_ACTIONS: Dict[str, List[PermissionScope]] = {
    "create": [PermissionScope.ALL],
    "read": [
        PermissionScope.ALL,
        PermissionScope.OWN,
        PermissionScope.GROUP,
        PermissionScope.ASSIGNED,
    ],
    "update": [PermissionScope.ALL, PermissionScope.OWN],
    "delete": [PermissionScope.ALL, PermissionScope.OWN],
}


class PermissionSpec(NamedTuple):
    """A permission to seed."""

    module: str
    action: str
    scope: PermissionScope
    description: str


SPECIAL_PERMISSIONS: List[PermissionSpec] = [
    PermissionSpec(WILDCARD, WILDCARD, PermissionScope.ALL, "Full system access"),
    PermissionSpec("rbac", "assign", PermissionScope.ALL, "Assign roles to users"),
]


def describe_permission(module: str, action: str, scope: PermissionScope) -> str:
    """Human readable description, e.g. "Read reports with group scope"."""
    return f"{action.capitalize()} {module} with {scope.value.lower()} scope"


def standard_permission_specs(module: str) -> List[PermissionSpec]:
    """Every (action, scope) of the standard set for one module."""
    return [
        PermissionSpec(module, action, scope, describe_permission(module, action, scope))
        for action, scopes in STANDARD_ACTIONS.items()
        for scope in scopes
    ]


def all_permission_specs() -> List[PermissionSpec]:
    """The full seeded catalogue: standard permissions of every module plus specials."""
    specs: List[PermissionSpec] = []
    for module in MODULES:
        specs.extend(standard_permission_specs(module))
    specs.extend(SPECIAL_PERMISSIONS)
    return specs


def parse_pattern(pattern: str) -> Tuple[str, str, str]:
    """
    Split a "module:action:SCOPE" role pattern.

    Raises:
        ValueError: If the pattern does not have exactly three parts
    """
    parts = pattern.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid permission pattern: {pattern}")
    module, action, scope = parts
    if scope != WILDCARD:
        scope = PermissionScope(scope.upper()).value
    return module, action, scope


# Super Administrator: the global wildcard
SUPER_ADMIN_PERMISSIONS = ["*:*:ALL"]

# Administrator: platform administration
ADMIN_PERMISSIONS = [
    "users:*:ALL",
    "groups:*:ALL",
    "system:*:ALL",
    "reports:*:ALL",
    "rbac:read:ALL",
]

# Teacher: own teaching content, read access within their groups
TEACHER_PERMISSIONS = [
    "lessons:*:OWN",
    "lessons:read:GROUP",
    "homework:*:OWN",
    "materials:*:OWN",
    "quiz:*:OWN",
    "students:read:GROUP",
    "schedule:read:ALL",
    "schedule:update:OWN",
    "reports:read:GROUP",
    "chat:*:GROUP",
    "calendar:*:OWN",
    "tasks:*:OWN",
]

# Student: learning materials of their group, own homework
STUDENT_PERMISSIONS = [
    "lessons:read:GROUP",
    "homework:read:OWN",
    "homework:create:OWN",
    "homework:update:OWN",
    "materials:read:GROUP",
    "quiz:read:GROUP",
    "schedule:read:GROUP",
    "chat:read:GROUP",
    "chat:create:GROUP",
    "calendar:read:OWN",
    "tasks:read:OWN",
    "payments:read:OWN",
]

# Parent: records assigned to them
PARENT_PERMISSIONS = [
    "students:read:ASSIGNED",
    "lessons:read:ASSIGNED",
    "homework:read:ASSIGNED",
    "schedule:read:ASSIGNED",
    "payments:read:ASSIGNED",
    "reports:read:ASSIGNED",
    "chat:read:ASSIGNED",
]

# HR Manager: staff management and role assignment
HR_PERMISSIONS = [
    "users:*:ALL",
    "teachers:*:ALL",
    "reports:read:ALL",
    "tasks:*:ALL",
    "calendar:read:ALL",
    "rbac:read:ALL",
    "rbac:assign:ALL",
]

# Financist: payments and financial reporting
FINANCIST_PERMISSIONS = [
    "payments:*:ALL",
    "reports:*:ALL",
    "students:read:ALL",
    "users:read:ALL",
]


# Role definitions for seeding, keyed by the static role label users carry
DEFAULT_ROLES: Dict[str, dict] = {
    "SUPER_ADMIN": {
        "name": "Super Administrator",
        "description": "Full access to every feature of the system",
        "permissions": SUPER_ADMIN_PERMISSIONS,
        "is_system": True,
    },
    "ADMIN": {
        "name": "Administrator",
        "description": "Administrative access to the system",
        "permissions": ADMIN_PERMISSIONS,
        "is_system": True,
    },
    "TEACHER": {
        "name": "Teacher",
        "description": "Teaching staff with access to learning materials",
        "permissions": TEACHER_PERMISSIONS,
        "is_system": True,
    },
    "STUDENT": {
        "name": "Student",
        "description": "Access to learning materials and personal data",
        "permissions": STUDENT_PERMISSIONS,
        "is_system": True,
    },
    "PARENT": {
        "name": "Parent",
        "description": "Access to information about their children",
        "permissions": PARENT_PERMISSIONS,
        "is_system": True,
    },
    "HR": {
        "name": "HR Manager",
        "description": "Staff management",
        "permissions": HR_PERMISSIONS,
        "is_system": True,
    },
    "FINANCIST": {
        "name": "Financist",
        "description": "Financial management",
        "permissions": FINANCIST_PERMISSIONS,
        "is_system": True,
    },
}


def get_default_role_permissions(role_key: str) -> List[str]:
    """Get permission patterns for a default role."""
    role = DEFAULT_ROLES.get(role_key.upper())
    return list(role["permissions"]) if role else []


def get_default_role_name(role_key: str) -> str:
    """Map a static role label (e.g. "TEACHER") to the seeded role name, or ''."""
    role = DEFAULT_ROLES.get(role_key.upper())
    return role["name"] if role else ""
