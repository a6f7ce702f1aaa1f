"""
Country Pydantic Schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CountryCreate(BaseModel):
    name: str = Field(..., max_length=255, description="Country name")
    code: Optional[str] = Field(
        None,
        max_length=2,
        description="ISO 3166-1 alpha-2 code; resolved from the name when omitted"
    )

    @field_validator('code', mode='before')
    @classmethod
    def normalize_code(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v


class CountryResponse(BaseModel):
    id: int
    name: str
    code: str
    created_at: datetime

    class Config:
        from_attributes = True
