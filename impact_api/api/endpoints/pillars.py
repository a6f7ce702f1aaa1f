"""
Pillar API Routes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.security import require_permission, CATALOG_WRITE
from impact_api.db.database import get_db
from impact_api.models.user import User
from impact_api.schemas.common import APIResponse, create_success_response
from impact_api.schemas.pillar import PillarCreate, PillarUpdate, FocusAreaResponse
from impact_api.services.catalog import PillarCatalog

router = APIRouter()


@router.get("/", response_model=APIResponse)
async def list_pillars(db: AsyncSession = Depends(get_db)):
    pillars = await PillarCatalog(db).list_pillars()
    return create_success_response(pillars, "Pillars retrieved successfully", count=len(pillars))


@router.get("/meta/focus-areas", response_model=APIResponse)
async def list_selectable_focus_areas(db: AsyncSession = Depends(get_db)):
    """All focus areas that can be attached to a pillar"""
    focus_areas = [FocusAreaResponse.model_validate(fa) for fa in await PillarCatalog(db).list_focus_areas()]
    return create_success_response(focus_areas, "Focus areas retrieved successfully", count=len(focus_areas))


@router.get("/{pillar_id}", response_model=APIResponse)
async def get_pillar(pillar_id: int, db: AsyncSession = Depends(get_db)):
    pillar = await PillarCatalog(db).get_pillar(pillar_id)
    return create_success_response(pillar, "Pillar retrieved successfully")


@router.get("/{pillar_id}/focus-areas", response_model=APIResponse)
async def list_pillar_focus_areas(pillar_id: int, db: AsyncSession = Depends(get_db)):
    """Focus areas a project under this pillar may select"""
    focus_areas = [
        FocusAreaResponse.model_validate(fa)
        for fa in await PillarCatalog(db).list_focus_areas_for_pillar(pillar_id)
    ]
    return create_success_response(focus_areas, "Focus areas retrieved successfully", count=len(focus_areas))


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_pillar(
    pillar_data: PillarCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    pillar = await PillarCatalog(db).create_pillar(pillar_data)
    return create_success_response(pillar, "Pillar created successfully")


@router.put("/{pillar_id}", response_model=APIResponse)
async def update_pillar(
    pillar_id: int,
    pillar_data: PillarUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    pillar = await PillarCatalog(db).update_pillar(pillar_id, pillar_data)
    return create_success_response(pillar, "Pillar updated successfully")


@router.delete("/{pillar_id}", response_model=APIResponse)
async def delete_pillar(
    pillar_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    """Soft delete a pillar; refused while projects or team members use it"""
    await PillarCatalog(db).delete_pillar(pillar_id)
    return create_success_response(None, "Pillar deleted successfully")
