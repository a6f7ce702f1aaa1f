"""
Pillar and focus area Pydantic Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class FocusAreaCreate(BaseModel):
    name: str = Field(..., max_length=255, description="Focus area name")
    description: Optional[str] = Field(None, description="Focus area description")


class FocusAreaUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None


class FocusAreaResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PillarCreate(BaseModel):
    name: str = Field(..., max_length=255, description="Pillar name")
    description: str = Field(..., description="Pillar description")
    image_url: Optional[str] = Field(None, max_length=500)
    order_index: int = 0
    focus_area_ids: List[int] = Field(default_factory=list, alias="focusAreaIds")

    class Config:
        populate_by_name = True


class PillarUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=500)
    order_index: Optional[int] = None
    focus_area_ids: Optional[List[int]] = Field(None, alias="focusAreaIds")

    class Config:
        populate_by_name = True


class PillarResponse(BaseModel):
    id: int
    name: str
    description: str
    image_url: Optional[str] = None
    order_index: int
    is_active: bool
    focus_areas: List[FocusAreaResponse] = []
    created_at: datetime
    updated_at: datetime
