"""
Impact metric model
"""

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, Index, CheckConstraint
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


DEFAULT_IMPACT_COLOR = "#1976d2"


class Impact(Base):
    """
    A global counter such as "People Served".

    ``current_value`` equals ``starting_value`` plus the contributions of
    every non-deleted project. Only ``ImpactLedger`` writes it.
    """

    __tablename__ = "impacts"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    unit = Column(String(100), nullable=True)

    starting_value = Column(Integer, default=0, nullable=False)
    current_value = Column(Integer, default=0, nullable=False)

    # Display
    icon = Column(String(255), nullable=True)
    color = Column(String(20), default=DEFAULT_IMPACT_COLOR, nullable=False)
    order_index = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    is_featured = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("starting_value >= 0", name="starting_value_non_negative"),
        CheckConstraint("order_index >= 0", name="order_index_non_negative"),
        Index("ix_impacts_active_order", "is_active", "order_index"),
    )

    def __repr__(self):
        return f"<Impact(id={self.id}, name={self.name}, current_value={self.current_value})>"
