"""
Pillar model and its focus-area membership table
"""

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint, text
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


class Pillar(Base):
    """
    Programme pillar grouping focus areas.

    Names are unique case-insensitively among active pillars only, so the name
    of a soft-deleted pillar can be reused.
    """

    __tablename__ = "pillars"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)
    order_index = Column(Integer, default=0, nullable=False)

    # Soft-delete flag; deleted pillars keep their rows for historical projects
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("order_index >= 0", name="order_index_non_negative"),
        Index("ix_pillars_active_order", "is_active", "order_index"),
        Index(
            "uq_pillars_active_name",
            func.lower(name),
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    def __repr__(self):
        return f"<Pillar(id={self.id}, name={self.name}, active={self.is_active})>"


class PillarFocusArea(Base):
    """Association between a pillar and a focus area it offers"""

    __tablename__ = "pillar_focus_areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pillar_id = Column(Integer, ForeignKey("pillars.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("pillar_id", "category_id", name="uq_pillar_focus_area"),
    )

    def __repr__(self):
        return f"<PillarFocusArea(pillar_id={self.pillar_id}, category_id={self.category_id})>"
