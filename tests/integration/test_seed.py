"""Integration tests for RBAC seeding."""

from campus.core.rbac.roles import DEFAULT_ROLES, all_permission_specs
from campus.core.rbac.service import RbacService
from campus.core.rbac.cache import InMemoryDecisionCache
from campus.db.models import (
    Permission,
    PermissionCacheEntry,
    Role,
    RolePermission,
    UserRoleAssignment,
)
from campus.db.seed import (
    assign_default_roles,
    clear_permission_cache,
    expand_pattern,
    seed_all,
    seed_default_roles,
    seed_permissions,
)


class TestSeedPermissions:

    def test_seeds_full_catalogue(self, db_session):
        seeded = seed_permissions(db_session)

        assert len(seeded) == len(all_permission_specs())
        assert "reports:read:GROUP" in seeded
        assert "*:*:ALL" in seeded
        assert all(p.is_system for p in seeded.values())

    def test_idempotent(self, db_session):
        seed_permissions(db_session)
        count = db_session.query(Permission).count()

        seed_permissions(db_session)

        assert db_session.query(Permission).count() == count


class TestExpandPattern:

    def test_action_wildcard(self, db_session):
        seed_permissions(db_session)
        actions = {p.action for p in expand_pattern(db_session, "users:*:ALL")}
        assert actions == {"create", "read", "update", "delete"}

    def test_global_wildcard_is_the_wildcard_permission(self, db_session):
        seed_permissions(db_session)
        [perm] = expand_pattern(db_session, "*:*:ALL")
        assert (perm.module, perm.action) == ("*", "*")

    def test_exact(self, db_session):
        seed_permissions(db_session)
        [perm] = expand_pattern(db_session, "lessons:read:GROUP")
        assert perm.scope == "GROUP"


class TestSeedRoles:

    def test_default_roles_created(self, db_session):
        seed_permissions(db_session)
        roles = seed_default_roles(db_session)

        assert set(roles) == set(DEFAULT_ROLES)
        assert all(role.is_system for role in roles.values())
        assert len(roles["SUPER_ADMIN"].role_permissions) == 1
        assert len(roles["PARENT"].role_permissions) == len(DEFAULT_ROLES["PARENT"]["permissions"])

    def test_reseeding_rebuilds_links(self, db_session):
        seed_permissions(db_session)
        seed_default_roles(db_session)
        links = db_session.query(RolePermission).count()

        seed_default_roles(db_session)

        assert db_session.query(Role).count() == len(DEFAULT_ROLES)
        assert db_session.query(RolePermission).count() == links


class TestAssignDefaultRoles:

    def test_assigns_by_label(self, db_session, user_factory):
        teacher = user_factory(role="TEACHER")
        user_factory(role="JANITOR")
        user_factory(role="STUDENT", is_active=False)
        seed_permissions(db_session)
        seed_default_roles(db_session)

        assert assign_default_roles(db_session) == 1
        [assignment] = db_session.query(UserRoleAssignment).all()
        assert assignment.user_id == teacher.id
        assert assignment.role.name == "Teacher"

        assert assign_default_roles(db_session) == 0

    def test_seed_all_grants_default_permissions(self, db_session, store, user_factory):
        admin = user_factory(role="SUPER_ADMIN")
        teacher = user_factory(role="TEACHER")
        parent = user_factory(role="PARENT")

        seed_all(db_session)

        service = RbacService(store, InMemoryDecisionCache())
        assert service.authorize(admin.id, "payments", "delete")
        assert service.authorize(teacher.id, "lessons", "read", group_id=4)
        assert service.authorize(teacher.id, "lessons", "update", owner_id=teacher.id)
        assert not service.authorize(teacher.id, "payments", "read")
        assert service.authorize(parent.id, "homework", "read")
        assert not service.authorize(parent.id, "homework", "update")


class TestSeedInvalidatesCache:

    def test_cached_denial_is_dropped_by_seed_all(self, db_session, rbac_service, user_factory):
        teacher = user_factory(role="TEACHER")
        assert not rbac_service.authorize(teacher.id, "lessons", "read", group_id=4)
        assert db_session.get(PermissionCacheEntry, teacher.id) is not None

        seed_all(db_session)

        assert db_session.query(PermissionCacheEntry).count() == 0
        assert rbac_service.authorize(teacher.id, "lessons", "read", group_id=4)

    def test_external_cache_is_invalidated(self, db_session, user_factory):
        teacher = user_factory(role="TEACHER")
        cache = InMemoryDecisionCache()
        cache.put(teacher.id, [])

        seed_all(db_session, cache)

        assert cache.get(teacher.id) is None

    def test_clear_permission_cache(self, db_session, store_cache, user_factory):
        first = user_factory()
        second = user_factory()
        store_cache.put(first.id, [])
        store_cache.put(second.id, [])

        assert clear_permission_cache(db_session) == 2
        assert store_cache.get(first.id) is None
