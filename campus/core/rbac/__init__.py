"""RBAC (Role-Based Access Control) engine for Campus.

This package defines the permission model, the resolver, the decision cache,
the audit recorder and the handler requirement utilities. Administration
services live in `service`, `role_service` and `permission_service`.
"""

from .permissions import (
    PermissionScope,
    PermissionCheck,
    EffectivePermission,
    PermissionIdRef,
    PermissionKeyRef,
    parse_permission_ref,
    permission_key,
)
from .cache import DecisionCache, StoreDecisionCache, InMemoryDecisionCache, RedisDecisionCache
from .resolver import PermissionResolver, AssignmentChecker, AllowAllAssignmentChecker
from .audit import AuditRecord, AuditRecorder
from .checker import RequiredPermission, PermissionGuard, require_permission

__all__ = [
    "PermissionScope",
    "PermissionCheck",
    "EffectivePermission",
    "PermissionIdRef",
    "PermissionKeyRef",
    "parse_permission_ref",
    "permission_key",
    "DecisionCache",
    "StoreDecisionCache",
    "InMemoryDecisionCache",
    "RedisDecisionCache",
    "PermissionResolver",
    "AssignmentChecker",
    "AllowAllAssignmentChecker",
    "AuditRecord",
    "AuditRecorder",
    "RequiredPermission",
    "PermissionGuard",
    "require_permission",
]
