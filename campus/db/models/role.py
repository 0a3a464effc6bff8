import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from campus.db.base import Base


class Role(Base):
    """
    A named bundle of permissions assignable to users.

    System roles cannot be modified, disabled, or deleted. Deletion is soft:
    `deleted_at` is set and the role is deactivated.
    """

    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    role_permissions = relationship(
        "RolePermission", back_populates="role", cascade="all, delete-orphan"
    )
    assignments = relationship("UserRoleAssignment", back_populates="role")

    @property
    def is_usable(self) -> bool:
        """Whether the role currently grants anything."""
        return bool(self.is_active) and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class RolePermission(Base):
    """Link between a role and a permission, optionally narrowed by conditions."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(Uuid, ForeignKey("permissions.id"), nullable=False, index=True)
    conditions = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} permission={self.permission_id}>"
