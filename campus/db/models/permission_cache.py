from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, DateTime, JSON, ForeignKey

from campus.db.base import Base


class PermissionCacheEntry(Base):
    """A user's resolved permission list, valid until `expires_at`."""

    __tablename__ = "user_permission_cache"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    permissions = Column(JSON, nullable=False, default=list)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or datetime.utcnow())

    def __repr__(self) -> str:
        return f"<PermissionCacheEntry user={self.user_id} expires={self.expires_at}>"
