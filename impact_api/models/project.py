"""
Project model with its focus-area selection and impact contributions
"""

import enum

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Date, Enum, JSON,
    ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func

from impact_api.db.database import Base, utcnow


class ProjectStatusEnum(str, enum.Enum):
    PLANNING = "planning"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)
    short_description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(Enum(ProjectStatusEnum), default=ProjectStatusEnum.PLANNING, nullable=False, index=True)

    # Associations
    pillar_id = Column(Integer, ForeignKey("pillars.id"), nullable=False, index=True)
    # First selected focus area, kept for clients that only know one category
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    country_id = Column(Integer, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True, index=True)

    # Media
    featured_image = Column(String(500), nullable=True)
    gallery = Column(JSON, default=list, nullable=False)

    sdg_goals = Column(JSON, default=list, nullable=False)
    testimonials = Column(JSON, default=list, nullable=False)

    order_index = Column(Integer, default=0, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False, index=True)
    is_hidden = Column(Boolean, default=False, nullable=False, index=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("order_index >= 0", name="order_index_non_negative"),
        Index("ix_projects_visible", "is_deleted", "is_hidden", "order_index"),
        Index("ix_projects_featured_visible", "is_featured", "is_hidden", "is_deleted"),
    )

    def __repr__(self):
        return f"<Project(id={self.id}, title={self.title}, status={self.status})>"


class ProjectFocusArea(Base):
    """Ordered focus-area selection of a project"""

    __tablename__ = "project_focus_areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "category_id", name="uq_project_focus_area"),
    )

    def __repr__(self):
        return f"<ProjectFocusArea(project_id={self.project_id}, category_id={self.category_id}, position={self.position})>"


class ProjectImpact(Base):
    """A project's declared contribution to one impact"""

    __tablename__ = "project_impacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    impact_id = Column(Integer, ForeignKey("impacts.id", ondelete="CASCADE"), nullable=False, index=True)
    contribution_value = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "impact_id", name="uq_project_impact"),
        CheckConstraint("contribution_value >= 0", name="contribution_value_non_negative"),
    )

    def __repr__(self):
        return f"<ProjectImpact(project_id={self.project_id}, impact_id={self.impact_id}, value={self.contribution_value})>"
