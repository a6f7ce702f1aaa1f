"""
Focus area (category) API Routes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.security import require_permission, CATALOG_WRITE
from impact_api.db.database import get_db
from impact_api.models.user import User
from impact_api.schemas.common import APIResponse, create_success_response
from impact_api.schemas.pillar import FocusAreaCreate, FocusAreaUpdate, FocusAreaResponse
from impact_api.services.catalog import PillarCatalog

router = APIRouter()


@router.get("/", response_model=APIResponse)
async def list_focus_areas(db: AsyncSession = Depends(get_db)):
    focus_areas = [FocusAreaResponse.model_validate(fa) for fa in await PillarCatalog(db).list_focus_areas()]
    return create_success_response(focus_areas, "Focus areas retrieved successfully", count=len(focus_areas))


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_focus_area(
    focus_area_data: FocusAreaCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    focus_area = await PillarCatalog(db).create_focus_area(focus_area_data)
    return create_success_response(FocusAreaResponse.model_validate(focus_area), "Focus area created successfully")


@router.put("/{focus_area_id}", response_model=APIResponse)
async def update_focus_area(
    focus_area_id: int,
    focus_area_data: FocusAreaUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    focus_area = await PillarCatalog(db).update_focus_area(focus_area_id, focus_area_data)
    return create_success_response(FocusAreaResponse.model_validate(focus_area), "Focus area updated successfully")


@router.delete("/{focus_area_id}", response_model=APIResponse)
async def delete_focus_area(
    focus_area_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    await PillarCatalog(db).delete_focus_area(focus_area_id)
    return create_success_response(None, "Focus area deleted successfully")
