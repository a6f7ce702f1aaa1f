"""
Database models for the impact aggregation service
"""

from .user import User
from .category import Category, FocusArea
from .pillar import Pillar, PillarFocusArea
from .country import Country
from .impact import Impact
from .project import Project, ProjectFocusArea, ProjectImpact, ProjectStatusEnum
from .team import TeamMember

__all__ = [
    "User",
    "Category",
    "FocusArea",
    "Pillar",
    "PillarFocusArea",
    "Country",
    "Impact",
    "Project",
    "ProjectFocusArea",
    "ProjectImpact",
    "ProjectStatusEnum",
    "TeamMember",
]
