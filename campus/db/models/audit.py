"""Permission audit model for Campus RBAC.

Append-only record of every authorization decision. Rows are never updated
or deleted by the application.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Uuid

from campus.db.base import Base


class PermissionAudit(Base):
    """One authorization decision."""

    __tablename__ = "permission_audits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor (not a foreign key: decisions for unknown users are audited too)
    user_id = Column(Integer, nullable=False, index=True)

    # What was requested
    action = Column(String(100), nullable=False, index=True)
    module = Column(String(100), nullable=False, index=True)
    resource = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)

    # Outcome
    allowed = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        outcome = "allowed" if self.allowed else "denied"
        return f"<PermissionAudit {self.module}:{self.action} {outcome} for user {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        user_id: int,
        action: str,
        module: str,
        *,
        allowed: bool,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        reason: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "PermissionAudit":
        """
        Factory method to create a new audit entry.

        Args:
            user_id: Principal the decision was made for
            action: Requested action (e.g. 'read')
            module: Requested module (e.g. 'reports')
            allowed: Decision outcome
            resource: Optional sub-resource qualifier
            resource_id: Optional identifier of the targeted record
            reason: Human readable reason
            created_at: Decision time (defaults to now)
        """
        return cls(
            user_id=user_id,
            action=action,
            module=module,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            allowed=allowed,
            reason=reason,
            created_at=created_at or datetime.utcnow(),
        )
