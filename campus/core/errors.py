"""Typed errors raised by the RBAC administration layer.

Each error carries the HTTP status the API boundary maps it to.
Authorization decisions never raise these; they only return True/False.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class RbacError(Exception):
    """Base class for RBAC errors."""

    status_code: int = 500

    def __init__(self, detail: str, *, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(RbacError):
    """A role, permission, principal or assignment does not exist."""

    status_code = 404


class ConflictError(RbacError):
    """A uniqueness or referential-integrity rule would be violated."""

    status_code = 409


class ForbiddenError(RbacError):
    """A system record was targeted for mutation, or access was denied."""

    status_code = 403


class InternalError(RbacError):
    """The policy store failed unexpectedly."""

    status_code = 500


@contextmanager
def store_errors(store, action: str) -> Iterator[None]:
    """
    Translate policy-store failures inside an administration operation.

    The unit of work is rolled back. An integrity violation (a racing insert
    of a unique row) becomes ConflictError; any other SQLAlchemy failure
    becomes InternalError. RbacErrors pass through untouched.
    """
    try:
        yield
    except RbacError:
        store.rollback()
        raise
    except IntegrityError as e:
        store.rollback()
        logger.warning(f"Integrity violation while trying to {action}: {e.orig}")
        raise ConflictError(f"Could not {action}: conflicting record exists") from e
    except SQLAlchemyError as e:
        store.rollback()
        logger.exception(f"Store failure while trying to {action}")
        raise InternalError(f"Could not {action}") from e
