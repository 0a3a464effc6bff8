import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Text, Enum, Uuid, Index
from sqlalchemy.orm import relationship

from campus.db.base import Base
from campus.core.rbac.permissions import PermissionScope


class Permission(Base):
    """
    A grant of `action` on `module` (optionally a sub-resource) within a scope.

    System permissions are created by seeding and cannot be edited or deleted.
    """

    __tablename__ = "permissions"
    __table_args__ = (
        Index("ix_permissions_module_action_resource", "module", "action", "resource"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module = Column(String(100), nullable=False, index=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(100), nullable=True)
    scope = Column(
        Enum(PermissionScope, name="permission_scope"),
        nullable=False,
        default=PermissionScope.ALL,
    )
    is_system = Column(Boolean, default=False, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    role_permissions = relationship("RolePermission", back_populates="permission")

    def __repr__(self) -> str:
        resource = f"/{self.resource}" if self.resource else ""
        return f"<Permission {self.module}:{self.action}{resource} ({self.scope})>"
