"""Tests for the permission resolver: matching, scope evaluation and fail-closed behaviour."""

from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import uuid4

from campus.core.rbac.audit import AuditRecorder
from campus.core.rbac.cache import InMemoryDecisionCache
from campus.core.rbac.permissions import EffectivePermission, PermissionCheck, PermissionScope
from campus.core.rbac.resolver import (
    AllowAllAssignmentChecker,
    PermissionResolver,
    evaluate_scope,
    load_effective_permissions,
    merge_context,
)
from campus.core.rbac.store import PolicyStore


PRINCIPAL = 42


def perm(module="reports", action="read", scope=PermissionScope.ALL, **kw):
    return EffectivePermission(module, action, kw.pop("resource", None), scope, **kw)


def role(name="Teacher", active=True, deleted=False):
    return SimpleNamespace(
        id=uuid4(),
        name=name,
        is_usable=active and not deleted,
    )


def link(module, action, scope=PermissionScope.ALL, conditions=None, resource=None):
    return SimpleNamespace(
        permission=SimpleNamespace(module=module, action=action, resource=resource, scope=scope),
        conditions=conditions,
    )


def make_store(label=None, assignments=(), roles_by_name=None, links_by_role=None):
    store = MagicMock(spec=PolicyStore)
    store.get_principal_role_label.return_value = label
    store.list_active_assignments.return_value = list(assignments)
    store.get_role_by_name.side_effect = lambda name: (roles_by_name or {}).get(name)
    store.list_role_permissions.side_effect = lambda role_id: (links_by_role or {}).get(role_id, [])
    return store


def resolver_with(permissions, auditor=None, checker=None):
    """Resolver whose cache is pre-filled with `permissions`."""
    cache = InMemoryDecisionCache()
    cache.put(PRINCIPAL, permissions)
    store = MagicMock(spec=PolicyStore)
    return PermissionResolver(store, cache, auditor=auditor, assignment_checker=checker)


class TestScopeEvaluation:
    """Test evaluate_scope for every scope."""

    def test_all_ignores_context(self):
        p = perm(scope=PermissionScope.ALL)
        for check in (
            PermissionCheck("reports", "read"),
            PermissionCheck("reports", "read", owner_id=1, group_id=2, department_id=3),
        ):
            assert evaluate_scope(p, check, PRINCIPAL)

    def test_own(self):
        p = perm(scope=PermissionScope.OWN)
        assert evaluate_scope(p, PermissionCheck("reports", "read", owner_id=PRINCIPAL), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("reports", "read", owner_id=7), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("reports", "read"), PRINCIPAL)

    def test_group_with_context(self):
        p = perm(scope=PermissionScope.GROUP, context={"group_id": 5})
        assert evaluate_scope(p, PermissionCheck("rbac", "read", group_id=5), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read", group_id=9), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read"), PRINCIPAL)

    def test_group_camel_case_context(self):
        p = perm(scope=PermissionScope.GROUP, context={"groupId": 5})
        assert evaluate_scope(p, PermissionCheck("rbac", "read", group_id=5), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read", group_id=9), PRINCIPAL)

    def test_group_without_context_accepts_any_group(self):
        """Without a narrowing context any group qualifies, but a group is required."""
        p = perm(scope=PermissionScope.GROUP)
        assert evaluate_scope(p, PermissionCheck("rbac", "read", group_id=123), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read"), PRINCIPAL)

    def test_group_from_role_conditions(self):
        p = perm(scope=PermissionScope.GROUP, conditions={"group_id": 3})
        assert evaluate_scope(p, PermissionCheck("rbac", "read", group_id=3), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read", group_id=4), PRINCIPAL)

    def test_assignment_context_overrides_conditions(self):
        p = perm(scope=PermissionScope.GROUP, conditions={"group_id": 3}, context={"group_id": 5})
        assert merge_context(p) == {"group_id": 5}
        assert evaluate_scope(p, PermissionCheck("rbac", "read", group_id=5), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("rbac", "read", group_id=3), PRINCIPAL)

    def test_department(self):
        p = perm(scope=PermissionScope.DEPARTMENT, context={"department_id": 2})
        assert evaluate_scope(p, PermissionCheck("teachers", "read", department_id=2), PRINCIPAL)
        assert not evaluate_scope(p, PermissionCheck("teachers", "read", department_id=3), PRINCIPAL)

        unscoped = perm(scope=PermissionScope.DEPARTMENT)
        assert evaluate_scope(unscoped, PermissionCheck("teachers", "read", department_id=8), PRINCIPAL)
        assert not evaluate_scope(unscoped, PermissionCheck("teachers", "read"), PRINCIPAL)

    def test_assigned_defaults_to_allow(self):
        p = perm(scope=PermissionScope.ASSIGNED)
        assert AllowAllAssignmentChecker().is_assigned(PRINCIPAL, PermissionCheck("students", "read"), {})
        assert evaluate_scope(p, PermissionCheck("students", "read"), PRINCIPAL)

    def test_assigned_delegates_to_checker(self):
        checker = MagicMock()
        checker.is_assigned.return_value = False
        p = perm(scope=PermissionScope.ASSIGNED, context={"student_id": 11})
        check = PermissionCheck("students", "read", resource_id="11")

        assert not evaluate_scope(p, check, PRINCIPAL, checker)
        checker.is_assigned.assert_called_once_with(PRINCIPAL, check, {"student_id": 11})


class TestDecision:
    """Test first-match-wins with continuation on scope failure."""

    def test_scope_failure_continues_scan(self):
        """An OWN permission failing must not hide a broader permission later."""
        resolver = resolver_with([
            perm(scope=PermissionScope.OWN),
            perm(scope=PermissionScope.ALL),
        ])
        assert resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read", owner_id=7))

    def test_own_denied_for_other_owner(self):
        resolver = resolver_with([perm(scope=PermissionScope.OWN)])
        assert not resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read", owner_id=7))
        assert resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read", owner_id=PRINCIPAL))

    def test_all_scope_grants_regardless_of_context(self):
        resolver = resolver_with([perm(scope=PermissionScope.ALL)])
        assert resolver.authorize(
            PRINCIPAL,
            PermissionCheck("reports", "read", owner_id=1, group_id=2, department_id=3),
        )

    def test_no_match_denies(self):
        resolver = resolver_with([perm(module="groups")])
        assert not resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read"))

    def test_empty_set_denies(self):
        assert not resolver_with([]).authorize(PRINCIPAL, PermissionCheck("reports", "read"))

    def test_wildcard_grants_everything(self):
        resolver = resolver_with([perm(module="*", action="*")])
        assert resolver.authorize(PRINCIPAL, PermissionCheck("payments", "delete"))


class TestFailClosed:
    """Any failure while deciding denies without raising."""

    def test_store_failure_denies(self):
        store = MagicMock(spec=PolicyStore)
        store.get_principal_role_label.side_effect = RuntimeError("database unavailable")
        resolver = PermissionResolver(store, InMemoryDecisionCache())

        assert resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read")) is False

    def test_cache_read_failure_falls_back_to_store(self):
        perm_role = role()
        store = make_store(
            assignments=[SimpleNamespace(role=perm_role, context=None)],
            links_by_role={perm_role.id: [link("reports", "read")]},
        )
        cache = MagicMock()
        cache.get.side_effect = ConnectionError("redis down")
        cache.put.side_effect = ConnectionError("redis down")
        resolver = PermissionResolver(store, cache)

        assert resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read"))

    def test_failed_decisions_are_audited(self):
        records = []
        store = MagicMock(spec=PolicyStore)
        store.get_principal_role_label.side_effect = RuntimeError("boom")
        resolver = PermissionResolver(
            store, InMemoryDecisionCache(), auditor=AuditRecorder(records.append, background=False)
        )

        resolver.authorize(PRINCIPAL, PermissionCheck("reports", "read"))

        assert len(records) == 1
        assert records[0].allowed is False
        assert records[0].reason == "Permission check failed"


class TestLoading:
    """Test effective-permission loading from the policy store."""

    def test_union_of_assigned_roles_with_context(self):
        teacher, mentor = role("Teacher"), role("Mentor")
        store = make_store(
            label="TEACHER",
            assignments=[
                SimpleNamespace(role=teacher, context=None),
                SimpleNamespace(role=mentor, context={"group_id": 5}),
            ],
            links_by_role={
                teacher.id: [link("lessons", "read")],
                mentor.id: [link("rbac", "read", PermissionScope.GROUP)],
            },
        )

        permissions = load_effective_permissions(store, PRINCIPAL)

        assert [(p.module, p.context) for p in permissions] == [
            ("lessons", None),
            ("rbac", {"group_id": 5}),
        ]
        store.get_role_by_name.assert_not_called()

    def test_legacy_label_fallback(self):
        legacy = role("TEACHER")
        store = make_store(
            label="TEACHER",
            roles_by_name={"TEACHER": legacy},
            links_by_role={legacy.id: [link("teachers", "read")]},
        )

        permissions = load_effective_permissions(store, PRINCIPAL)

        assert permissions == [
            EffectivePermission("teachers", "read", None, PermissionScope.ALL)
        ]

    def test_unusable_roles_contribute_nothing(self):
        disabled, deleted = role(active=False), role(deleted=True)
        store = make_store(
            assignments=[
                SimpleNamespace(role=disabled, context=None),
                SimpleNamespace(role=deleted, context=None),
            ],
            links_by_role={
                disabled.id: [link("reports", "read")],
                deleted.id: [link("reports", "read")],
            },
        )
        assert load_effective_permissions(store, PRINCIPAL) == []

    def test_scope_strings_are_normalised(self):
        legacy = role("STUDENT")
        store = make_store(
            label="STUDENT",
            roles_by_name={"STUDENT": legacy},
            links_by_role={legacy.id: [link("homework", "read", "OWN", conditions={"x": 1})]},
        )
        [p] = load_effective_permissions(store, PRINCIPAL)
        assert p.scope is PermissionScope.OWN
        assert p.conditions == {"x": 1}

    def test_resolver_caches_loaded_set(self):
        legacy = role("TEACHER")
        store = make_store(
            label="TEACHER",
            roles_by_name={"TEACHER": legacy},
            links_by_role={legacy.id: [link("teachers", "read")]},
        )
        resolver = PermissionResolver(store, InMemoryDecisionCache())

        assert resolver.authorize(PRINCIPAL, PermissionCheck("teachers", "read"))
        assert resolver.authorize(PRINCIPAL, PermissionCheck("teachers", "read"))
        assert store.get_principal_role_label.call_count == 1
