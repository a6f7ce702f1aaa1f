"""
Country registry with ISO 3166-1 alpha-2 codes
"""

from typing import List

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.exceptions import ValidationError, ConflictError, NotFoundError
from impact_api.core.iso_countries import is_valid_code, code_for_name
from impact_api.models.country import Country
from impact_api.models.project import Project
from impact_api.schemas.country import CountryCreate

logger = structlog.get_logger()


class CountryRegistry:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_countries(self) -> List[Country]:
        result = await self.db.execute(select(Country).order_by(Country.name))
        return list(result.scalars().all())

    async def get_country(self, country_id: int) -> Country:
        country = await self.db.get(Country, country_id)
        if country is None:
            raise NotFoundError("country", country_id)
        return country

    async def create_country(self, data: CountryCreate) -> Country:
        """
        Register a country under its ISO code.

        The code is taken from the payload, or looked up from the name when
        the payload has none.
        """
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Country name is required", field="name")

        code = (data.code or "").strip().upper() or code_for_name(name)
        if not code:
            raise ValidationError(
                f"No ISO 3166-1 alpha-2 code known for '{name}'; provide one explicitly",
                field="code"
            )
        if not is_valid_code(code):
            raise ValidationError(f"'{code}' is not an ISO 3166-1 alpha-2 country code", field="code")

        duplicate_name = (await self.db.execute(
            select(Country.id).where(func.lower(Country.name) == name.lower())
        )).first()
        if duplicate_name is not None:
            raise ConflictError(f"Country '{name}' already exists", resource="country")

        duplicate_code = (await self.db.execute(select(Country.id).where(Country.code == code))).first()
        if duplicate_code is not None:
            raise ConflictError(f"Country code '{code}' is already in use", resource="country")

        country = Country(name=name, code=code)
        self.db.add(country)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Country created", country_id=country.id, name=name, code=code)
        return country

    async def delete_country(self, country_id: int):
        country = await self.get_country(country_id)
        project_count = (await self.db.execute(
            select(func.count(Project.id))
            .where(Project.country_id == country_id, Project.is_deleted.is_(False))
        )).scalar_one()
        if project_count:
            raise ConflictError(
                "Cannot delete country: it is used by active projects",
                resource="country",
                references={"projects": project_count}
            )

        try:
            await self.db.delete(country)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Country deleted", country_id=country_id)
