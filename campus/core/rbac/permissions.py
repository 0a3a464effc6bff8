"""Permission model for Campus RBAC.

A permission grants an action on a module (optionally narrowed to a
sub-resource) within a scope:

  - module:   coarse resource category ("reports", "groups", "teachers")
  - action:   operation ("create", "read", "update", "delete", "assign")
  - resource: optional sub-resource qualifier
  - scope:    breadth of records covered (ALL, OWN, GROUP, DEPARTMENT, ASSIGNED)

"*" in module or action matches every concrete value.

Permission keys use the format "module:action:SCOPE", e.g.
  - reports:read:ALL
  - homework:update:OWN
  - *:*:ALL
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Union
from uuid import UUID


WILDCARD = "*"


class PermissionScope(str, Enum):
    """Breadth of records a permission covers."""

    ALL = "ALL"                 # Every record, no restriction
    OWN = "OWN"                 # Records owned by the principal
    GROUP = "GROUP"             # Records of the principal's group
    DEPARTMENT = "DEPARTMENT"   # Records of the principal's department
    ASSIGNED = "ASSIGNED"       # Records assigned to the principal


SCOPE_LABELS: Dict[PermissionScope, str] = {
    PermissionScope.ALL: "All records",
    PermissionScope.OWN: "Own records only",
    PermissionScope.GROUP: "Group",
    PermissionScope.DEPARTMENT: "Department",
    PermissionScope.ASSIGNED: "Assigned",
}

SCOPE_DESCRIPTIONS: Dict[PermissionScope, str] = {
    PermissionScope.ALL: "Access to every record without restriction",
    PermissionScope.OWN: "Access only to records created by the user",
    PermissionScope.GROUP: "Access to records within the user's group",
    PermissionScope.DEPARTMENT: "Access to records within the user's department",
    PermissionScope.ASSIGNED: "Access to records assigned to the user",
}


@dataclass(frozen=True)
class PermissionCheck:
    """A requested action plus the context used for scope evaluation."""

    module: str
    action: str
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    owner_id: Optional[int] = None
    group_id: Optional[int] = None
    department_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class EffectivePermission(NamedTuple):
    """One entry of a principal's resolved permission set."""

    module: str
    action: str
    resource: Optional[str]
    scope: PermissionScope
    conditions: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None

    def matches(self, check: PermissionCheck) -> bool:
        """Check module/action/resource match, honouring "*" wildcards."""
        module_match = self.module == check.module or self.module == WILDCARD
        action_match = self.action == check.action or self.action == WILDCARD
        resource_match = (
            not check.resource
            or not self.resource
            or self.resource == check.resource
        )
        return module_match and action_match and resource_match

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the permission cache (None values dropped)."""
        data: Dict[str, Any] = {
            "module": self.module,
            "action": self.action,
            "scope": self.scope.value,
        }
        if self.resource:
            data["resource"] = self.resource
        if self.conditions:
            data["conditions"] = self.conditions
        if self.context:
            data["context"] = self.context
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EffectivePermission":
        return cls(
            module=data["module"],
            action=data["action"],
            resource=data.get("resource"),
            scope=PermissionScope(data["scope"]),
            conditions=data.get("conditions"),
            context=data.get("context"),
        )


# ---------------------------------------------------------------------------
# Permission references used when building roles
# ---------------------------------------------------------------------------


class PermissionIdRef(NamedTuple):
    """Reference to a permission by its identifier."""

    id: UUID

    def __str__(self) -> str:
        return str(self.id)


class PermissionKeyRef(NamedTuple):
    """Reference to a permission by its (module, action, scope) key."""

    module: str
    action: str
    scope: PermissionScope

    def __str__(self) -> str:
        return permission_key(self.module, self.action, self.scope)


PermissionRef = Union[PermissionIdRef, PermissionKeyRef]


def permission_key(module: str, action: str, scope: Union[PermissionScope, str]) -> str:
    """Build a "module:action:SCOPE" key."""
    scope_value = scope.value if isinstance(scope, PermissionScope) else scope
    return f"{module}:{action}:{scope_value}"


def parse_permission_ref(value: Union[str, UUID, PermissionIdRef, PermissionKeyRef]) -> PermissionRef:
    """
    Parse a permission reference.

    Accepts a permission UUID, a "module:action:SCOPE" key, or the legacy
    "module-action-SCOPE" key. The scope is always the last segment and the
    action the one before it, so hyphenated module names ("ai-assistant")
    survive the legacy format.

    Raises:
        ValueError: If the value is neither a UUID nor a well-formed key.
    """
    if isinstance(value, (PermissionIdRef, PermissionKeyRef)):
        return value
    if isinstance(value, UUID):
        return PermissionIdRef(value)

    text = str(value).strip()
    try:
        return PermissionIdRef(UUID(text))
    except ValueError:
        pass

    separator = ":" if ":" in text else "-"
    parts = text.rsplit(separator, 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(
            f"Invalid permission reference: {value}. "
            f"Expected a UUID or module:action:SCOPE"
        )
    module, action, scope = parts
    try:
        return PermissionKeyRef(module, action, PermissionScope(scope.upper()))
    except ValueError:
        raise ValueError(f"Invalid permission scope: {scope} in {value}") from None
