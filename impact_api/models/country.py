"""
Country model
"""

from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


class Country(Base):
    __tablename__ = "countries"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), unique=True, nullable=False, index=True)
    # ISO 3166-1 alpha-2
    code = Column(String(2), unique=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Country(id={self.id}, name={self.name}, code={self.code})>"
