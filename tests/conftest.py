"""Pytest configuration and shared fixtures.

Database fixtures run against an in-memory SQLite database; the models use
portable column types so no PostgreSQL server is needed.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campus.core.rbac.audit import AuditRecorder
from campus.core.rbac.cache import InMemoryDecisionCache, StoreDecisionCache
from campus.core.rbac.permission_service import PermissionService
from campus.core.rbac.role_service import RoleService
from campus.core.rbac.service import RbacService
from campus.db.base import Base
from campus.db import models  # noqa: F401  (registers tables on Base.metadata)
from campus.db.store import SqlAlchemyPolicyStore

from tests import factories


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """A session on a fresh database, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return SqlAlchemyPolicyStore(db_session)


@pytest.fixture
def memory_cache():
    return InMemoryDecisionCache(ttl_seconds=3600)


@pytest.fixture
def store_cache(store):
    return StoreDecisionCache(store, ttl_seconds=3600)


@pytest.fixture
def audit_log():
    """Audit records written by the `auditor` fixture."""
    return []


@pytest.fixture
def auditor(audit_log):
    """Synchronous recorder collecting records into `audit_log`."""
    return AuditRecorder(audit_log.append, background=False)


@pytest.fixture
def rbac_service(store, store_cache, auditor):
    return RbacService(store, store_cache, auditor=auditor)


@pytest.fixture
def role_service(store, store_cache):
    return RoleService(store, store_cache)


@pytest.fixture
def permission_service(store, store_cache):
    return PermissionService(store, store_cache)


# ---------------------------------------------------------------------------
# Factory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_factory(db_session):
    def _create(**kwargs):
        return factories.create_user(db_session, **kwargs)
    return _create


@pytest.fixture
def permission_factory(db_session):
    def _create(**kwargs):
        return factories.create_permission(db_session, **kwargs)
    return _create


@pytest.fixture
def role_factory(db_session):
    def _create(**kwargs):
        return factories.create_role(db_session, **kwargs)
    return _create


@pytest.fixture
def assign_factory(db_session):
    def _create(user, role, **kwargs):
        return factories.assign(db_session, user, role, **kwargs)
    return _create
