"""
User model used to resolve authenticated principals
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    # e.g. ["impacts:write", "projects:write"]
    permissions = Column(JSON, default=list, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def has_permission(self, permission: str) -> bool:
        if not self.is_active:
            return False
        if self.is_superuser:
            return True
        return permission in (self.permissions or [])

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
