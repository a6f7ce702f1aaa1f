"""
Impact Pydantic Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ImpactCreate(BaseModel):
    name: str = Field(..., max_length=255, description="Impact name, e.g. 'Trees Planted'")
    description: Optional[str] = Field(None, description="Impact description")
    unit: Optional[str] = Field(None, max_length=100, description="Unit label, e.g. 'trees'")
    starting_value: int = Field(0, description="Baseline that predates tracked projects")
    icon: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    order_index: int = Field(0, description="Display order")
    is_active: bool = True
    is_featured: bool = False


class ImpactUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    unit: Optional[str] = Field(None, max_length=100)
    # Accepted only when unchanged; the baseline is write-once
    starting_value: Optional[int] = None
    # Administrative override of the running total
    current_value: Optional[int] = None
    icon: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    order_index: Optional[int] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class ImpactResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    unit: Optional[str] = None
    starting_value: int
    current_value: int
    icon: Optional[str] = None
    color: str
    order_index: int
    is_active: bool
    is_featured: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ImpactSummary(ImpactResponse):
    project_contribution: int = 0
    project_count: int = 0


class ContributingProject(BaseModel):
    id: int
    title: str
    contribution_value: int


class ImpactBreakdown(BaseModel):
    id: int
    name: str
    unit: Optional[str] = None
    starting_value: int
    current_value: int
    project_contribution: int
    contributing_projects: int
    project_details: List[ContributingProject] = []


class ImpactStats(BaseModel):
    total_impacts: int
    active_impacts: int
    featured_impacts: int
    total_impact_value: int
    projects_with_impacts: int


class TotalCorrection(BaseModel):
    impact_id: int
    name: str
    previous_value: int
    recalculated_value: int


class RecalculationReport(BaseModel):
    impacts_checked: int
    impacts_corrected: int
    orphaned_contributions_removed: int
    corrections: List[TotalCorrection] = []


class AuditReport(BaseModel):
    impacts_checked: int
    consistent: bool
    drift: List[TotalCorrection] = []
