"""
Read-side projections for projects and impacts.

Everything here is read-only and computed from stored state, so results
always reflect the latest committed totals.
"""

from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.config import settings
from impact_api.core.exceptions import NotFoundError
from impact_api.models.category import Category
from impact_api.models.country import Country
from impact_api.models.impact import Impact
from impact_api.models.pillar import Pillar
from impact_api.models.project import Project, ProjectFocusArea, ProjectImpact, ProjectStatusEnum
from impact_api.schemas.impact import ImpactSummary, ImpactBreakdown, ImpactStats, ContributingProject
from impact_api.schemas.project import (
    ProjectResponse, ProjectDetail, ProjectImpactDetail, FocusAreaRef, ProjectStats, StatusCount, FocusAreaCount
)

_live_project = Project.is_deleted.is_(False)


class ProjectionService:

    def __init__(self, db: AsyncSession):
        self.db = db

    # Projects

    def _project_query(self):
        return (
            select(
                Project,
                Pillar.name.label("pillar_name"),
                Category.name.label("category_name"),
                Country.name.label("country_name"),
                Country.code.label("country_code"),
            )
            .outerjoin(Pillar, Pillar.id == Project.pillar_id)
            .outerjoin(Category, Category.id == Project.category_id)
            .outerjoin(Country, Country.id == Project.country_id)
            .where(_live_project)
            .execution_options(populate_existing=True)
        )

    async def _focus_areas_for(self, project_ids: List[int]) -> Dict[int, List[FocusAreaRef]]:
        grouped = {project_id: [] for project_id in project_ids}
        if not project_ids:
            return grouped
        rows = (await self.db.execute(
            select(ProjectFocusArea.project_id, Category.id, Category.name)
            .join(Category, Category.id == ProjectFocusArea.category_id)
            .where(ProjectFocusArea.project_id.in_(project_ids))
            .order_by(ProjectFocusArea.project_id, ProjectFocusArea.position)
        )).all()
        for project_id, category_id, name in rows:
            grouped[project_id].append(FocusAreaRef(id=category_id, name=name))
        return grouped

    def _project_fields(self, row, focus_areas: List[FocusAreaRef]) -> dict:
        project = row.Project
        return dict(
            id=project.id,
            title=project.title,
            slug=project.slug,
            description=project.description,
            short_description=project.short_description,
            location=project.location,
            start_date=project.start_date,
            end_date=project.end_date,
            status=project.status,
            order_index=project.order_index,
            is_featured=project.is_featured,
            is_hidden=project.is_hidden,
            featured_image=project.featured_image,
            gallery=project.gallery or [],
            sdg_goals=project.sdg_goals or [],
            testimonials=project.testimonials or [],
            pillar_id=project.pillar_id,
            pillar_name=row.pillar_name,
            category_id=project.category_id,
            category_name=row.category_name,
            focus_areas=focus_areas,
            country_id=project.country_id,
            country_name=row.country_name,
            country_code=row.country_code,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )

    async def _project_rows_to_responses(self, rows) -> List[ProjectResponse]:
        focus_areas = await self._focus_areas_for([row.Project.id for row in rows])
        return [ProjectResponse(**self._project_fields(row, focus_areas[row.Project.id])) for row in rows]

    async def get_project_impacts(self, project_id: int) -> List[ProjectImpactDetail]:
        await self._ensure_live_project(project_id)
        rows = (await self.db.execute(
            select(ProjectImpact.contribution_value, Impact)
            .join(Impact, Impact.id == ProjectImpact.impact_id)
            .where(ProjectImpact.project_id == project_id)
            .order_by(Impact.order_index, Impact.name)
        )).all()
        return [
            ProjectImpactDetail(
                impact_id=impact.id,
                impact_name=impact.name,
                impact_description=impact.description,
                unit=impact.unit,
                icon=impact.icon,
                color=impact.color,
                contribution_value=value,
            )
            for value, impact in rows
        ]

    async def _ensure_live_project(self, project_id: int):
        exists = (await self.db.execute(
            select(Project.id).where(Project.id == project_id, _live_project)
        )).first()
        if exists is None:
            raise NotFoundError("project", project_id)

    async def _project_detail(self, row) -> ProjectDetail:
        project_id = row.Project.id
        focus_areas = await self._focus_areas_for([project_id])
        return ProjectDetail(
            **self._project_fields(row, focus_areas[project_id]),
            project_impacts=await self.get_project_impacts(project_id),
        )

    async def get_project_with_associations(self, project_id: int) -> ProjectDetail:
        """
        A project with its pillar, focus areas, country and enriched contributions

        Raises:
            NotFoundError: If the project does not exist or was deleted
        """
        row = (await self.db.execute(self._project_query().where(Project.id == project_id))).first()
        if row is None:
            raise NotFoundError("project", project_id)
        return await self._project_detail(row)

    async def get_project_by_slug(self, slug: str) -> ProjectDetail:
        row = (await self.db.execute(self._project_query().where(Project.slug == slug))).first()
        if row is None:
            raise NotFoundError("project")
        return await self._project_detail(row)

    async def list_projects(
        self,
        pillar_id: Optional[int] = None,
        category_id: Optional[int] = None,
        country_id: Optional[int] = None,
        status: Optional[ProjectStatusEnum] = None,
        featured: Optional[bool] = None,
        hidden: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[ProjectResponse]:
        query = self._project_query()
        if pillar_id is not None:
            query = query.where(Project.pillar_id == pillar_id)
        if category_id is not None:
            query = query.where(Project.category_id == category_id)
        if country_id is not None:
            query = query.where(Project.country_id == country_id)
        if status is not None:
            query = query.where(Project.status == status)
        if featured is not None:
            query = query.where(Project.is_featured.is_(featured))
        if hidden is not None:
            query = query.where(Project.is_hidden.is_(hidden))

        query = query.order_by(Project.order_index, Project.created_at.desc(), Project.id.desc())
        if limit is not None:
            query = query.limit(min(limit, settings.MAX_PAGE_SIZE))
        if offset:
            query = query.offset(offset)

        rows = (await self.db.execute(query)).all()
        return await self._project_rows_to_responses(rows)

    async def get_featured_projects(self, limit: Optional[int] = None) -> List[ProjectResponse]:
        return await self.list_projects(
            featured=True,
            hidden=False,
            limit=limit or settings.FEATURED_PROJECTS_LIMIT
        )

    async def get_project_stats(self) -> ProjectStats:
        counts = (await self.db.execute(
            select(
                func.count(Project.id),
                func.count(Project.id).filter(Project.is_featured.is_(True)),
                func.count(Project.id).filter(Project.is_hidden.is_(False)),
            ).where(_live_project)
        )).one()

        by_status = (await self.db.execute(
            select(Project.status, func.count(Project.id))
            .where(_live_project)
            .group_by(Project.status)
            .order_by(Project.status)
        )).all()

        by_focus_area = (await self.db.execute(
            select(Category.id, Category.name, func.count(ProjectFocusArea.project_id))
            .join(ProjectFocusArea, ProjectFocusArea.category_id == Category.id)
            .join(Project, and_(Project.id == ProjectFocusArea.project_id, _live_project))
            .group_by(Category.id, Category.name)
            .order_by(Category.name)
        )).all()

        contribution_rows = (await self.db.execute(
            select(func.count(ProjectImpact.id))
            .select_from(ProjectImpact)
            .join(Project, Project.id == ProjectImpact.project_id)
            .where(_live_project)
        )).scalar_one()

        total, featured, visible = counts
        return ProjectStats(
            total_projects=total,
            featured_projects=featured,
            visible_projects=visible,
            hidden_projects=total - visible,
            contribution_rows=contribution_rows,
            by_status=[StatusCount(status=s, count=c) for s, c in by_status],
            by_focus_area=[FocusAreaCount(id=i, name=n, count=c) for i, n, c in by_focus_area],
        )

    # Impacts

    def _contribution_totals(self):
        return (
            select(
                ProjectImpact.impact_id.label("impact_id"),
                func.coalesce(func.sum(ProjectImpact.contribution_value), 0).label("project_contribution"),
                func.count(func.distinct(ProjectImpact.project_id)).label("project_count"),
            )
            .join(Project, Project.id == ProjectImpact.project_id)
            .where(_live_project)
            .group_by(ProjectImpact.impact_id)
            .subquery()
        )

    def _impact_query(self):
        totals = self._contribution_totals()
        return (
            select(
                Impact,
                func.coalesce(totals.c.project_contribution, 0),
                func.coalesce(totals.c.project_count, 0),
            )
            .outerjoin(totals, totals.c.impact_id == Impact.id)
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _impact_summary(impact: Impact, contribution: int, project_count: int) -> ImpactSummary:
        summary = ImpactSummary.model_validate(impact)
        summary.project_contribution = int(contribution)
        summary.project_count = int(project_count)
        return summary

    async def list_impacts(
        self,
        is_active: Optional[bool] = None,
        is_featured: Optional[bool] = None
    ) -> List[ImpactSummary]:
        query = self._impact_query()
        if is_active is not None:
            query = query.where(Impact.is_active.is_(is_active))
        if is_featured is not None:
            query = query.where(Impact.is_featured.is_(is_featured))
        query = query.order_by(Impact.order_index, Impact.created_at.desc(), Impact.id)

        rows = (await self.db.execute(query)).all()
        return [self._impact_summary(*row) for row in rows]

    async def get_impact(self, impact_id: int) -> ImpactSummary:
        row = (await self.db.execute(self._impact_query().where(Impact.id == impact_id))).first()
        if row is None:
            raise NotFoundError("impact", impact_id)
        return self._impact_summary(*row)

    async def get_impact_breakdown(self, impact_id: int) -> ImpactBreakdown:
        """How an impact's total splits between its baseline and each project"""
        summary = await self.get_impact(impact_id)
        rows = (await self.db.execute(
            select(Project.id, Project.title, ProjectImpact.contribution_value)
            .join(ProjectImpact, ProjectImpact.project_id == Project.id)
            .where(ProjectImpact.impact_id == impact_id, _live_project)
            .order_by(ProjectImpact.contribution_value.desc(), Project.id)
        )).all()

        return ImpactBreakdown(
            id=summary.id,
            name=summary.name,
            unit=summary.unit,
            starting_value=summary.starting_value,
            current_value=summary.current_value,
            project_contribution=summary.project_contribution,
            contributing_projects=summary.project_count,
            project_details=[
                ContributingProject(id=pid, title=title, contribution_value=value)
                for pid, title, value in rows
            ],
        )

    async def get_impact_stats(self) -> ImpactStats:
        totals = (await self.db.execute(
            select(
                func.count(Impact.id),
                func.count(Impact.id).filter(Impact.is_active.is_(True)),
                func.count(Impact.id).filter(Impact.is_featured.is_(True)),
                func.coalesce(func.sum(Impact.current_value), 0),
            )
        )).one()

        projects_with_impacts = (await self.db.execute(
            select(func.count(func.distinct(ProjectImpact.project_id)))
            .select_from(ProjectImpact)
            .join(Project, Project.id == ProjectImpact.project_id)
            .where(_live_project)
        )).scalar_one()

        total, active, featured, total_value = totals
        return ImpactStats(
            total_impacts=total,
            active_impacts=active,
            featured_impacts=featured,
            total_impact_value=int(total_value),
            projects_with_impacts=projects_with_impacts,
        )
