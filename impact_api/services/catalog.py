"""
Pillar and focus area catalog
"""

from typing import Dict, List, Optional

import structlog
from sqlalchemy import select, func, delete, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.exceptions import ValidationError, ConflictError, NotFoundError
from impact_api.models.category import Category
from impact_api.models.pillar import Pillar, PillarFocusArea
from impact_api.models.project import Project, ProjectFocusArea
from impact_api.models.team import TeamMember
from impact_api.schemas.common import field_error
from impact_api.schemas.pillar import (
    PillarCreate, PillarUpdate, PillarResponse, FocusAreaCreate, FocusAreaUpdate, FocusAreaResponse
)

logger = structlog.get_logger()


class PillarCatalog:
    """Pillar membership of focus areas and conflict-checked deletion"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Pillars

    async def get_active_pillar(self, pillar_id: int, lock: bool = False) -> Pillar:
        query = select(Pillar).where(Pillar.id == pillar_id, Pillar.is_active.is_(True))
        if lock:
            query = query.with_for_update()
        pillar = (await self.db.execute(query)).scalar_one_or_none()
        if pillar is None:
            raise NotFoundError("pillar", pillar_id)
        return pillar

    async def list_focus_areas_for_pillar(self, pillar_id: int) -> List[Category]:
        """
        Focus areas a project under this pillar may select, ordered by name

        Raises:
            NotFoundError: If the pillar does not exist or was deleted
        """
        await self.get_active_pillar(pillar_id)
        result = await self.db.execute(
            select(Category)
            .join(PillarFocusArea, PillarFocusArea.category_id == Category.id)
            .where(PillarFocusArea.pillar_id == pillar_id)
            .order_by(Category.name)
        )
        return list(result.scalars().all())

    async def _focus_areas_by_pillar(self, pillar_ids: List[int]) -> Dict[int, List[Category]]:
        grouped = {pillar_id: [] for pillar_id in pillar_ids}
        if not pillar_ids:
            return grouped
        result = await self.db.execute(
            select(PillarFocusArea.pillar_id, Category)
            .join(Category, Category.id == PillarFocusArea.category_id)
            .where(PillarFocusArea.pillar_id.in_(pillar_ids))
            .order_by(Category.name)
        )
        for pillar_id, category in result.all():
            grouped[pillar_id].append(category)
        return grouped

    def _pillar_response(self, pillar: Pillar, focus_areas: List[Category]) -> PillarResponse:
        return PillarResponse(
            id=pillar.id,
            name=pillar.name,
            description=pillar.description,
            image_url=pillar.image_url,
            order_index=pillar.order_index,
            is_active=pillar.is_active,
            focus_areas=[FocusAreaResponse.model_validate(fa) for fa in focus_areas],
            created_at=pillar.created_at,
            updated_at=pillar.updated_at,
        )

    async def list_pillars(self) -> List[PillarResponse]:
        pillars = (await self.db.execute(
            select(Pillar)
            .where(Pillar.is_active.is_(True))
            .order_by(Pillar.order_index, Pillar.name)
        )).scalars().all()
        focus_areas = await self._focus_areas_by_pillar([p.id for p in pillars])
        return [self._pillar_response(p, focus_areas[p.id]) for p in pillars]

    async def get_pillar(self, pillar_id: int) -> PillarResponse:
        pillar = await self.get_active_pillar(pillar_id)
        focus_areas = await self._focus_areas_by_pillar([pillar.id])
        return self._pillar_response(pillar, focus_areas[pillar.id])

    async def _ensure_unique_pillar_name(self, name: str, exclude_id: Optional[int] = None):
        query = select(Pillar.id).where(func.lower(Pillar.name) == name.lower(), Pillar.is_active.is_(True))
        if exclude_id is not None:
            query = query.where(Pillar.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError(f"A pillar named '{name}' already exists", resource="pillar")

    async def _validate_focus_area_ids(self, focus_area_ids: List[int]) -> List[int]:
        unique_ids = list(dict.fromkeys(focus_area_ids))
        if not unique_ids:
            return unique_ids
        found = set((await self.db.execute(
            select(Category.id).where(Category.id.in_(unique_ids))
        )).scalars().all())
        missing = [fa_id for fa_id in unique_ids if fa_id not in found]
        if missing:
            raise ValidationError(
                "Invalid focus areas",
                field="focus_area_ids",
                errors=[field_error("focus_area_ids", f"Focus areas not found: {missing}")]
            )
        return unique_ids

    async def _ensure_unlinked_focus_areas_unused(self, pillar_id: int, focus_area_ids: List[int]):
        """Refuse to unlink focus areas that live projects under the pillar still select."""
        linked = (await self.db.execute(
            select(PillarFocusArea.category_id).where(PillarFocusArea.pillar_id == pillar_id)
        )).scalars().all()
        removed = sorted(set(linked) - set(focus_area_ids))
        if not removed:
            return

        selected_by = select(ProjectFocusArea.project_id).where(ProjectFocusArea.category_id.in_(removed))
        project_count = (await self.db.execute(
            select(func.count(Project.id)).where(
                Project.pillar_id == pillar_id,
                Project.is_deleted.is_(False),
                or_(Project.category_id.in_(removed), Project.id.in_(selected_by))
            )
        )).scalar_one()

        if project_count:
            raise ConflictError(
                f"Cannot unlink focus areas {removed}: they are used by active projects under this pillar",
                resource="pillar",
                references={"projects": project_count}
            )

    async def _replace_pillar_focus_areas(self, pillar_id: int, focus_area_ids: List[int]):
        await self.db.execute(delete(PillarFocusArea).where(PillarFocusArea.pillar_id == pillar_id))
        for category_id in focus_area_ids:
            self.db.add(PillarFocusArea(pillar_id=pillar_id, category_id=category_id))

    async def create_pillar(self, data: PillarCreate) -> PillarResponse:
        name = (data.name or "").strip()
        description = (data.description or "").strip()
        errors = []
        if not name:
            errors.append(field_error("name", "Pillar name is required"))
        if not description:
            errors.append(field_error("description", "Pillar description is required"))
        if data.order_index < 0:
            errors.append(field_error("order_index", "Order index must be a non-negative integer"))
        if errors:
            raise ValidationError("Invalid pillar data", errors=errors)

        await self._ensure_unique_pillar_name(name)
        focus_area_ids = await self._validate_focus_area_ids(data.focus_area_ids)

        pillar = Pillar(
            name=name,
            description=description,
            image_url=data.image_url,
            order_index=data.order_index,
            is_active=True,
        )
        try:
            self.db.add(pillar)
            await self.db.flush()
            await self._replace_pillar_focus_areas(pillar.id, focus_area_ids)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"A pillar named '{name}' already exists", resource="pillar")
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Pillar created", pillar_id=pillar.id, name=name, focus_areas=focus_area_ids)
        return await self.get_pillar(pillar.id)

    async def update_pillar(self, pillar_id: int, data: PillarUpdate) -> PillarResponse:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields provided for update")

        pillar = await self.get_active_pillar(pillar_id, lock=True)
        try:
            errors = []
            for key in ("name", "description"):
                if key in fields:
                    fields[key] = (fields[key] or "").strip()
                    if not fields[key]:
                        errors.append(field_error(key, f"Pillar {key} is required"))
            if "order_index" in fields and (fields["order_index"] is None or fields["order_index"] < 0):
                errors.append(field_error("order_index", "Order index must be a non-negative integer"))
            if errors:
                raise ValidationError("Invalid pillar data", errors=errors)

            if "name" in fields:
                await self._ensure_unique_pillar_name(fields["name"], exclude_id=pillar_id)

            focus_area_ids = fields.pop("focus_area_ids", None)
            if focus_area_ids is not None:
                focus_area_ids = await self._validate_focus_area_ids(focus_area_ids)
                await self._ensure_unlinked_focus_areas_unused(pillar_id, focus_area_ids)
                await self._replace_pillar_focus_areas(pillar_id, focus_area_ids)

            for key, value in fields.items():
                setattr(pillar, key, value)

            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("A pillar with this name already exists", resource="pillar")
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Pillar updated", pillar_id=pillar_id, focus_areas=focus_area_ids)
        return await self.get_pillar(pillar_id)

    async def delete_pillar(self, pillar_id: int):
        """
        Soft delete a pillar nothing active refers to.

        Raises:
            NotFoundError: If the pillar does not exist
            ConflictError: If a live project or an active team member references it
        """
        pillar = await self.get_active_pillar(pillar_id, lock=True)
        try:
            project_count = (await self.db.execute(
                select(func.count(Project.id))
                .where(Project.pillar_id == pillar_id, Project.is_deleted.is_(False))
            )).scalar_one()
            team_count = (await self.db.execute(
                select(func.count(TeamMember.id))
                .where(TeamMember.pillar_id == pillar_id, TeamMember.is_active.is_(True))
            )).scalar_one()

            if project_count or team_count:
                raise ConflictError(
                    "Cannot delete pillar: it is referenced by active projects or team members",
                    resource="pillar",
                    references={"projects": project_count, "team_members": team_count}
                )

            pillar.is_active = False
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Pillar deleted", pillar_id=pillar_id)

    # Focus areas

    async def list_focus_areas(self) -> List[Category]:
        result = await self.db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def get_focus_area(self, focus_area_id: int) -> Category:
        focus_area = await self.db.get(Category, focus_area_id)
        if focus_area is None:
            raise NotFoundError("focus area", focus_area_id)
        return focus_area

    async def _ensure_unique_focus_area_name(self, name: str, exclude_id: Optional[int] = None):
        query = select(Category.id).where(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError(f"A focus area named '{name}' already exists", resource="focus_area")

    async def create_focus_area(self, data: FocusAreaCreate) -> Category:
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Focus area name is required", field="name")
        await self._ensure_unique_focus_area_name(name)

        focus_area = Category(name=name, description=data.description)
        self.db.add(focus_area)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Focus area created", focus_area_id=focus_area.id, name=name)
        return focus_area

    async def update_focus_area(self, focus_area_id: int, data: FocusAreaUpdate) -> Category:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields provided for update")

        focus_area = await self.get_focus_area(focus_area_id)
        if "name" in fields:
            fields["name"] = (fields["name"] or "").strip()
            if not fields["name"]:
                raise ValidationError("Focus area name is required", field="name")
            await self._ensure_unique_focus_area_name(fields["name"], exclude_id=focus_area_id)

        for key, value in fields.items():
            setattr(focus_area, key, value)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Focus area updated", focus_area_id=focus_area_id)
        return focus_area

    async def delete_focus_area(self, focus_area_id: int):
        """
        Delete a focus area no live project has selected.

        Raises:
            NotFoundError: If the focus area does not exist
            ConflictError: If a non-deleted project references it
        """
        focus_area = await self.get_focus_area(focus_area_id)
        try:
            selected_by = select(ProjectFocusArea.project_id).where(ProjectFocusArea.category_id == focus_area_id)
            project_count = (await self.db.execute(
                select(func.count(Project.id)).where(
                    Project.is_deleted.is_(False),
                    or_(Project.category_id == focus_area_id, Project.id.in_(selected_by))
                )
            )).scalar_one()

            if project_count:
                raise ConflictError(
                    "Cannot delete focus area: it is used by active projects",
                    resource="focus_area",
                    references={"projects": project_count}
                )

            # Only soft-deleted projects can still point at it
            await self.db.execute(
                update(Project)
                .where(Project.category_id == focus_area_id)
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(delete(ProjectFocusArea).where(ProjectFocusArea.category_id == focus_area_id))
            await self.db.execute(delete(PillarFocusArea).where(PillarFocusArea.category_id == focus_area_id))
            await self.db.delete(focus_area)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Focus area deleted", focus_area_id=focus_area_id)
