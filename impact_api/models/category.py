"""
Focus area model.

Focus areas are stored in the ``categories`` table; older clients still
address them as categories.
"""

from sqlalchemy import Column, String, Text, Integer, DateTime
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Category(id={self.id}, name={self.name})>"


FocusArea = Category
