"""
Impact API Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.security import require_permission, IMPACTS_WRITE
from impact_api.db.database import get_db
from impact_api.models.user import User
from impact_api.schemas.common import APIResponse, create_success_response
from impact_api.schemas.impact import ImpactCreate, ImpactUpdate
from impact_api.services.impact_ledger import ImpactLedger
from impact_api.services.projections import ProjectionService

router = APIRouter()


@router.get("/", response_model=APIResponse)
async def list_impacts(
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    is_featured: Optional[bool] = Query(None, description="Filter by featured flag"),
    db: AsyncSession = Depends(get_db)
):
    """List impacts with their project contribution totals"""
    impacts = await ProjectionService(db).list_impacts(is_active=is_active, is_featured=is_featured)
    return create_success_response(impacts, "Impacts retrieved successfully", count=len(impacts))


@router.get("/stats", response_model=APIResponse)
async def get_impact_stats(db: AsyncSession = Depends(get_db)):
    stats = await ProjectionService(db).get_impact_stats()
    return create_success_response(stats, "Impact statistics retrieved successfully")


@router.get("/audit", response_model=APIResponse)
async def audit_impact_totals(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(IMPACTS_WRITE))
):
    """Report impacts whose stored totals drifted from their contributions"""
    report = await ImpactLedger(db).audit()
    message = "Impact totals are consistent" if report.consistent else "Impact totals have drifted"
    return create_success_response(report, message)


@router.post("/recalculate", response_model=APIResponse)
async def recalculate_impact_totals(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(IMPACTS_WRITE))
):
    """Rebuild every impact total and return the refreshed list"""
    report = await ImpactLedger(db).recalculate()
    impacts = await ProjectionService(db).list_impacts()
    return create_success_response(
        {"report": report, "impacts": impacts},
        "Impact totals recalculated successfully",
        count=len(impacts)
    )


@router.get("/{impact_id}", response_model=APIResponse)
async def get_impact(impact_id: int, db: AsyncSession = Depends(get_db)):
    impact = await ProjectionService(db).get_impact(impact_id)
    return create_success_response(impact, "Impact retrieved successfully")


@router.get("/{impact_id}/breakdown", response_model=APIResponse)
async def get_impact_breakdown(impact_id: int, db: AsyncSession = Depends(get_db)):
    """Starting value and per-project contributions behind an impact total"""
    breakdown = await ProjectionService(db).get_impact_breakdown(impact_id)
    return create_success_response(breakdown, "Impact breakdown retrieved successfully")


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_impact(
    impact_data: ImpactCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(IMPACTS_WRITE))
):
    impact = await ImpactLedger(db).create_impact(impact_data)
    summary = await ProjectionService(db).get_impact(impact.id)
    return create_success_response(summary, "Impact created successfully")


@router.put("/{impact_id}", response_model=APIResponse)
async def update_impact(
    impact_id: int,
    impact_data: ImpactUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(IMPACTS_WRITE))
):
    await ImpactLedger(db).update_impact(impact_id, impact_data)
    summary = await ProjectionService(db).get_impact(impact_id)
    return create_success_response(summary, "Impact updated successfully")


@router.delete("/{impact_id}", response_model=APIResponse)
async def delete_impact(
    impact_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(IMPACTS_WRITE))
):
    await ImpactLedger(db).delete_impact(impact_id)
    return create_success_response(None, "Impact deleted successfully")
