import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, DateTime, JSON, Boolean, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from campus.db.base import Base


class UserRoleAssignment(Base):
    """
    Grants a role to a user.

    A user holds a given role at most once; re-assignment reactivates the
    existing row. Revocation sets `is_active` to False. An assignment whose
    `expires_at` has passed is treated as inactive.

    `context` narrows the role's effect, e.g. {"group_id": 5}.
    """

    __tablename__ = "user_role_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role_assignments_user_role"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)

    # Who assigned this role
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # Optional expiration
    is_active = Column(Boolean, default=True, nullable=False)
    context = Column(JSON, nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="role_assignments")
    role = relationship("Role", back_populates="assignments")
    assigner = relationship("User", foreign_keys=[assigned_by])

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.is_active) and (self.expires_at is None or self.expires_at > now)

    def __repr__(self) -> str:
        return f"<UserRoleAssignment user={self.user_id} role={self.role_id} active={self.is_active}>"
