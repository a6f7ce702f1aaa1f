"""
Project Pydantic Schemas
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from impact_api.models.project import ProjectStatusEnum


class ProjectImpactInput(BaseModel):
    # Optional so that missing values surface as field errors from the composer
    impact_id: Optional[int] = None
    contribution_value: Optional[int] = None


class TestimonialInput(BaseModel):
    text: Optional[str] = ""
    author: Optional[str] = ""
    position: Optional[str] = ""

    @field_validator('text', 'author', 'position', mode='before')
    @classmethod
    def normalize_blank(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


class ProjectInput(BaseModel):
    """Full project payload used for creation"""

    title: str = Field("", max_length=255)
    description: str = ""
    short_description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatusEnum = ProjectStatusEnum.PLANNING
    order_index: int = 0
    is_featured: bool = False
    is_hidden: bool = False

    pillar_id: Optional[int] = None
    focus_area_ids: List[int] = Field(default_factory=list)
    # Single-category clients send this instead of focus_area_ids
    category_id: Optional[int] = None
    country_id: Optional[int] = None

    sdg_goals: List[int] = Field(default_factory=list)
    testimonials: List[TestimonialInput] = Field(default_factory=list)
    project_impacts: List[ProjectImpactInput] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    """Partial project payload; omitted fields keep their stored values"""

    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    short_description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatusEnum] = None
    order_index: Optional[int] = None
    is_featured: Optional[bool] = None
    is_hidden: Optional[bool] = None

    pillar_id: Optional[int] = None
    focus_area_ids: Optional[List[int]] = None
    category_id: Optional[int] = None
    country_id: Optional[int] = None

    sdg_goals: Optional[List[int]] = None
    testimonials: Optional[List[TestimonialInput]] = None
    # None keeps the existing contributions untouched
    project_impacts: Optional[List[ProjectImpactInput]] = None


class Testimonial(BaseModel):
    text: str = ""
    author: str = ""
    position: str = ""


class FocusAreaRef(BaseModel):
    id: int
    name: str


class ProjectImpactDetail(BaseModel):
    impact_id: int
    impact_name: str
    impact_description: Optional[str] = None
    unit: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    contribution_value: int


class ProjectResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str
    short_description: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatusEnum
    order_index: int
    is_featured: bool
    is_hidden: bool
    featured_image: Optional[str] = None
    gallery: List[str] = []
    sdg_goals: List[int] = []
    testimonials: List[Testimonial] = []

    pillar_id: int
    pillar_name: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    focus_areas: List[FocusAreaRef] = []
    country_id: Optional[int] = None
    country_name: Optional[str] = None
    country_code: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class ProjectDetail(ProjectResponse):
    project_impacts: List[ProjectImpactDetail] = []


class StatusCount(BaseModel):
    status: ProjectStatusEnum
    count: int


class FocusAreaCount(BaseModel):
    id: int
    name: str
    count: int


class ProjectStats(BaseModel):
    total_projects: int
    featured_projects: int
    visible_projects: int
    hidden_projects: int
    contribution_rows: int
    by_status: List[StatusCount] = []
    by_focus_area: List[FocusAreaCount] = []
