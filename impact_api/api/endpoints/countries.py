"""
Country API Routes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.security import require_permission, CATALOG_WRITE
from impact_api.db.database import get_db
from impact_api.models.user import User
from impact_api.schemas.common import APIResponse, create_success_response
from impact_api.schemas.country import CountryCreate, CountryResponse
from impact_api.services.country_registry import CountryRegistry

router = APIRouter()


@router.get("/", response_model=APIResponse)
async def list_countries(db: AsyncSession = Depends(get_db)):
    countries = [CountryResponse.model_validate(c) for c in await CountryRegistry(db).list_countries()]
    return create_success_response(countries, "Countries retrieved successfully", count=len(countries))


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_country(
    country_data: CountryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    country = await CountryRegistry(db).create_country(country_data)
    return create_success_response(CountryResponse.model_validate(country), "Country created successfully")


@router.delete("/{country_id}", response_model=APIResponse)
async def delete_country(
    country_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(CATALOG_WRITE))
):
    await CountryRegistry(db).delete_country(country_id)
    return create_success_response(None, "Country deleted successfully")
