"""
Impact ledger.

Keeps every impact's running total equal to its starting value plus the
contributions of all non-deleted projects. All writes to
``Impact.current_value`` go through this module.
"""

from typing import Dict, List, Optional

import structlog
from sqlalchemy import select, func, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.exceptions import ValidationError, ConflictError, NotFoundError, LedgerIntegrityError
from impact_api.models.impact import Impact, DEFAULT_IMPACT_COLOR
from impact_api.models.project import Project, ProjectImpact
from impact_api.schemas.common import field_error
from impact_api.schemas.impact import (
    ImpactCreate, ImpactUpdate, RecalculationReport, AuditReport, TotalCorrection
)

logger = structlog.get_logger()

# Hidden projects keep counting towards totals; only soft-deleted ones stop.
HIDDEN_PROJECTS_STILL_CONTRIBUTE = True

# Fields that may never be set to null on update
_NON_NULLABLE_FIELDS = {"name", "color", "order_index", "is_active", "is_featured"}


def project_counts_towards_totals(is_hidden: bool, is_deleted: bool = False) -> bool:
    if is_deleted:
        return False
    return HIDDEN_PROJECTS_STILL_CONTRIBUTE or not is_hidden


class ImpactLedger:
    """Owns impact definitions and the consistency of their totals"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_impact(self, impact_id: int, lock: bool = False) -> Impact:
        query = select(Impact).where(Impact.id == impact_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        impact = (await self.db.execute(query)).scalar_one_or_none()
        if impact is None:
            raise NotFoundError("impact", impact_id)
        return impact

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None):
        query = select(Impact.id).where(func.lower(Impact.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Impact.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError(f"An impact named '{name}' already exists", resource="impact")

    async def create_impact(self, data: ImpactCreate) -> Impact:
        """
        Create an impact whose total starts at its baseline.

        Raises:
            ValidationError: If the name is blank or a numeric field is negative
            ConflictError: If another impact already uses the name
        """
        name = (data.name or "").strip()
        errors = []
        if not name:
            errors.append(field_error("name", "Impact name is required"))
        if data.starting_value is None or data.starting_value < 0:
            errors.append(field_error("starting_value", "Starting value must be a non-negative integer"))
        if data.order_index is None or data.order_index < 0:
            errors.append(field_error("order_index", "Order index must be a non-negative integer"))
        if errors:
            raise ValidationError("Invalid impact data", errors=errors)

        await self._ensure_unique_name(name)

        impact = Impact(
            name=name,
            description=data.description,
            unit=data.unit,
            starting_value=data.starting_value,
            current_value=data.starting_value,
            icon=data.icon,
            color=data.color or DEFAULT_IMPACT_COLOR,
            order_index=data.order_index,
            is_active=data.is_active,
            is_featured=data.is_featured,
        )
        self.db.add(impact)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Impact created", impact_id=impact.id, name=impact.name, starting_value=impact.starting_value)
        return impact

    async def update_impact(self, impact_id: int, data: ImpactUpdate) -> Impact:
        """
        Update impact metadata.

        ``starting_value`` is write-once; sending the stored value is accepted.
        ``current_value`` is an administrative override and is logged.
        """
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields provided for update")

        impact = await self.get_impact(impact_id, lock=True)
        try:
            errors = []
            starting_value = fields.pop("starting_value", None)
            if starting_value is not None and starting_value != impact.starting_value:
                errors.append(field_error("starting_value", "Starting value cannot be changed once the impact exists"))

            for key in _NON_NULLABLE_FIELDS:
                if key in fields and fields[key] is None:
                    errors.append(field_error(key, f"{key} cannot be null"))

            if fields.get("name") is not None:
                fields["name"] = fields["name"].strip()
                if not fields["name"]:
                    errors.append(field_error("name", "Impact name is required"))

            if fields.get("order_index") is not None and fields["order_index"] < 0:
                errors.append(field_error("order_index", "Order index must be a non-negative integer"))

            if errors:
                raise ValidationError("Invalid impact data", errors=errors)

            if fields.get("name"):
                await self._ensure_unique_name(fields["name"], exclude_id=impact_id)

            override = fields.pop("current_value", None)
            for key, value in fields.items():
                setattr(impact, key, value)

            if override is not None and override != impact.current_value:
                logger.warning(
                    "Impact total overridden by administrator",
                    impact_id=impact_id,
                    previous_value=impact.current_value,
                    new_value=override
                )
                impact.current_value = override

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Impact updated", impact_id=impact_id, fields=sorted(fields))
        return impact

    async def delete_impact(self, impact_id: int):
        """
        Delete an impact that no live project contributes to.

        Raises:
            NotFoundError: If the impact does not exist
            ConflictError: If a non-deleted project references it
        """
        impact = await self.get_impact(impact_id, lock=True)
        try:
            references = (await self.db.execute(
                select(func.count(ProjectImpact.id))
                .select_from(ProjectImpact)
                .join(Project, Project.id == ProjectImpact.project_id)
                .where(ProjectImpact.impact_id == impact_id, Project.is_deleted.is_(False))
            )).scalar_one()

            if references:
                raise ConflictError(
                    "Cannot delete impact: it has active projects",
                    resource="impact",
                    references={"projects": references}
                )

            await self.db.execute(delete(ProjectImpact).where(ProjectImpact.impact_id == impact_id))
            await self.db.delete(impact)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Impact deleted", impact_id=impact_id)

    async def apply_contribution_delta(self, impact_id: int, delta: int):
        """
        Add ``delta`` to an impact's total inside the caller's transaction.

        The increment happens in the database so concurrent deltas on the
        same impact serialize on its row lock. Does not commit.

        Raises:
            LedgerIntegrityError: If the impact does not exist
        """
        if delta == 0:
            return

        result = await self.db.execute(
            update(Impact)
            .where(Impact.id == impact_id)
            .values(current_value=Impact.current_value + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.error("Contribution delta targets a missing impact", impact_id=impact_id, delta=delta)
            raise LedgerIntegrityError(f"Impact {impact_id} does not exist", impact_id=impact_id)

        logger.debug("Contribution delta applied", impact_id=impact_id, delta=delta)

    async def apply_contribution_deltas(self, deltas: Dict[int, int]):
        # Ascending id order keeps lock acquisition consistent across transactions
        for impact_id in sorted(deltas):
            await self.apply_contribution_delta(impact_id, deltas[impact_id])

    async def _contribution_sums(self) -> Dict[int, int]:
        query = (
            select(ProjectImpact.impact_id, func.coalesce(func.sum(ProjectImpact.contribution_value), 0))
            .select_from(ProjectImpact)
            .join(Project, Project.id == ProjectImpact.project_id)
            .where(Project.is_deleted.is_(False))
            .group_by(ProjectImpact.impact_id)
        )
        if not HIDDEN_PROJECTS_STILL_CONTRIBUTE:
            query = query.where(Project.is_hidden.is_(False))
        rows = (await self.db.execute(query)).all()
        return {impact_id: int(total) for impact_id, total in rows}

    async def _drift(self, impacts: List[Impact]) -> List[TotalCorrection]:
        sums = await self._contribution_sums()
        drift = []
        for impact in impacts:
            expected = impact.starting_value + sums.get(impact.id, 0)
            if impact.current_value != expected:
                drift.append(TotalCorrection(
                    impact_id=impact.id,
                    name=impact.name,
                    previous_value=impact.current_value,
                    recalculated_value=expected,
                ))
        return drift

    async def _remove_orphaned_contributions(self) -> int:
        orphans = (await self.db.execute(
            select(ProjectImpact.id, ProjectImpact.project_id, ProjectImpact.impact_id)
            .select_from(ProjectImpact)
            .outerjoin(Impact, Impact.id == ProjectImpact.impact_id)
            .outerjoin(Project, Project.id == ProjectImpact.project_id)
            .where(or_(Impact.id.is_(None), Project.id.is_(None)))
        )).all()

        for row_id, project_id, impact_id in orphans:
            logger.error(
                "Orphaned contribution removed",
                contribution_id=row_id,
                project_id=project_id,
                impact_id=impact_id
            )

        if orphans:
            await self.db.execute(
                delete(ProjectImpact)
                .where(ProjectImpact.id.in_([row[0] for row in orphans]))
                .execution_options(synchronize_session=False)
            )
        return len(orphans)

    async def recalculate(self) -> RecalculationReport:
        """
        Rebuild every impact total from starting values and live contributions.

        Idempotent; running it on consistent data changes nothing.
        """
        try:
            orphans_removed = await self._remove_orphaned_contributions()

            impacts = (await self.db.execute(
                select(Impact)
                .order_by(Impact.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )).scalars().all()

            corrections = await self._drift(impacts)
            by_id = {impact.id: impact for impact in impacts}
            for correction in corrections:
                by_id[correction.impact_id].current_value = correction.recalculated_value
                logger.warning(
                    "Impact total drift repaired",
                    impact_id=correction.impact_id,
                    previous_value=correction.previous_value,
                    recalculated_value=correction.recalculated_value
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        report = RecalculationReport(
            impacts_checked=len(impacts),
            impacts_corrected=len(corrections),
            orphaned_contributions_removed=orphans_removed,
            corrections=corrections,
        )
        logger.info(
            "Impact totals recalculated",
            impacts_checked=report.impacts_checked,
            impacts_corrected=report.impacts_corrected,
            orphaned_contributions_removed=orphans_removed
        )
        return report

    async def audit(self) -> AuditReport:
        """Report impacts whose stored total disagrees with their contributions."""
        impacts = (await self.db.execute(
            select(Impact).order_by(Impact.id).execution_options(populate_existing=True)
        )).scalars().all()
        drift = await self._drift(impacts)
        if drift:
            logger.warning("Impact total drift detected", impacts=[d.impact_id for d in drift])
        return AuditReport(impacts_checked=len(impacts), consistent=not drift, drift=drift)
