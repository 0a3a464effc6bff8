"""Tests for the RBAC error taxonomy and store error translation."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from campus.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    RbacError,
    store_errors,
)


class TestErrorTaxonomy:

    @pytest.mark.parametrize(
        "error_class,status_code",
        [(NotFoundError, 404), (ConflictError, 409), (ForbiddenError, 403), (InternalError, 500)],
    )
    def test_status_codes(self, error_class, status_code):
        error = error_class("boom")
        assert isinstance(error, RbacError)
        assert error.status_code == status_code
        assert error.detail == "boom"

    def test_status_override(self):
        assert RbacError("teapot", status_code=418).status_code == 418


class TestStoreErrors:

    def test_success_does_not_roll_back(self):
        store = MagicMock()
        with store_errors(store, "create role"):
            pass
        store.rollback.assert_not_called()

    def test_rbac_errors_pass_through(self):
        store = MagicMock()
        with pytest.raises(NotFoundError):
            with store_errors(store, "create role"):
                raise NotFoundError("Role not found")
        store.rollback.assert_called_once()

    def test_integrity_error_becomes_conflict(self):
        store = MagicMock()
        with pytest.raises(ConflictError, match="Could not assign role"):
            with store_errors(store, "assign role"):
                raise IntegrityError("INSERT", {}, Exception("duplicate key"))
        store.rollback.assert_called_once()

    def test_other_store_errors_become_internal(self):
        store = MagicMock()
        with pytest.raises(InternalError):
            with store_errors(store, "delete role"):
                raise OperationalError("SELECT", {}, Exception("connection refused"))
        store.rollback.assert_called_once()

    def test_unrelated_exceptions_propagate(self):
        store = MagicMock()
        with pytest.raises(KeyError):
            with store_errors(store, "delete role"):
                raise KeyError("x")
        store.rollback.assert_not_called()
