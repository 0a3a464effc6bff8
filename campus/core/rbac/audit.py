"""Audit trail for authorization decisions.

Every decision the resolver makes is handed to an AuditRecorder. Recording is
best-effort: failures are logged and swallowed so that authorization latency
and outcome never depend on the audit log.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from .permissions import PermissionCheck

logger = logging.getLogger(__name__)

GRANTED_REASON = "Permission granted"
DENIED_REASON = "Permission denied"


@dataclass
class AuditRecord:
    """A single authorization decision."""

    principal_id: int
    module: str
    action: str
    allowed: bool
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_check(
        cls,
        principal_id: int,
        check: PermissionCheck,
        allowed: bool,
        reason: Optional[str] = None,
    ) -> "AuditRecord":
        return cls(
            principal_id=principal_id,
            module=check.module,
            action=check.action,
            allowed=allowed,
            resource=check.resource,
            resource_id=str(check.resource_id) if check.resource_id is not None else None,
            reason=reason or (GRANTED_REASON if allowed else DENIED_REASON),
        )


class AuditWriter(Protocol):
    """Anything that can persist an AuditRecord."""

    def __call__(self, record: AuditRecord) -> None:
        ...


class SessionAuditWriter:
    """
    Persists audit records through a dedicated database session.

    A fresh session is opened per record so background writes never share
    the request's session.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def __call__(self, record: AuditRecord) -> None:
        from campus.db.store import SqlAlchemyPolicyStore

        db = self.session_factory()
        try:
            SqlAlchemyPolicyStore(db).append_audit(record)
        finally:
            db.close()


class AuditRecorder:
    """
    Appends a record of every authorization decision.

    Args:
        writer: Callable persisting one AuditRecord
        background: Run writes on a thread pool instead of inline
        max_workers: Thread pool size when background is enabled
        enabled: When False, record() is a no-op
    """

    def __init__(
        self,
        writer: AuditWriter,
        *,
        background: bool = True,
        max_workers: int = 2,
        enabled: bool = True,
    ):
        self.writer = writer
        self.enabled = enabled
        self._executor: Optional[ThreadPoolExecutor] = None
        if background:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="rbac-audit"
            )

    def record(
        self,
        principal_id: int,
        check: PermissionCheck,
        allowed: bool,
        reason: Optional[str] = None,
    ) -> None:
        """Record a decision. Never raises."""
        if not self.enabled:
            return
        try:
            entry = AuditRecord.from_check(principal_id, check, allowed, reason)
            if self._executor is not None:
                self._executor.submit(self._write, entry)
            else:
                self._write(entry)
        except Exception:
            logger.exception(
                f"Failed to queue audit record for user {principal_id} "
                f"({check.module}:{check.action})"
            )

    def _write(self, entry: AuditRecord) -> None:
        try:
            self.writer(entry)
        except Exception:
            logger.exception(
                f"Failed to write audit record for user {entry.principal_id} "
                f"({entry.module}:{entry.action})"
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool, draining pending writes when wait=True."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
