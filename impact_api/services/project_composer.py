"""
Project composer.

Creates, updates and retires projects together with their focus-area
selection and impact contributions. Every change to a contribution is
mirrored into the impact totals through the ledger in the same
transaction.
"""

from typing import Dict, List, Optional, Tuple

import structlog
from fastapi import UploadFile
from slugify import slugify
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.config import settings
from impact_api.core.exceptions import ValidationError, NotFoundError, FileUploadError
from impact_api.db.database import utcnow
from impact_api.models.country import Country
from impact_api.models.impact import Impact
from impact_api.models.project import Project, ProjectFocusArea, ProjectImpact
from impact_api.schemas.common import field_error
from impact_api.schemas.project import ProjectInput, ProjectUpdate
from impact_api.services.catalog import PillarCatalog
from impact_api.services.file_storage import FileStorage
from impact_api.services.impact_ledger import ImpactLedger, project_counts_towards_totals

logger = structlog.get_logger()

SLUG_MAX_LENGTH = 100
SDG_GOAL_RANGE = range(1, 18)

# Columns copied straight from a validated payload onto the project row
_SCALAR_FIELDS = (
    "title", "description", "short_description", "location", "start_date", "end_date",
    "status", "order_index", "is_featured", "is_hidden", "pillar_id", "country_id",
    "sdg_goals", "testimonials",
)


def contribution_deltas(old: Dict[int, int], new: Dict[int, int]) -> Dict[int, int]:
    """Per-impact change needed to go from ``old`` contributions to ``new``."""
    deltas = {}
    for impact_id in set(old) | set(new):
        delta = new.get(impact_id, 0) - old.get(impact_id, 0)
        if delta:
            deltas[impact_id] = delta
    return deltas


class ProjectComposer:
    """Validates and persists projects with all of their associations"""

    def __init__(self, db: AsyncSession, storage: Optional[FileStorage] = None):
        self.db = db
        self.storage = storage
        self.ledger = ImpactLedger(db)
        self.catalog = PillarCatalog(db)

    # Validation

    async def _validate(
        self,
        payload: ProjectInput,
        gallery_count: int = 0,
        validate_contributions: bool = True
    ) -> Tuple[dict, List[int], Optional[Dict[int, int]]]:
        """
        Check a full payload and normalize it.

        Returns the column values, the ordered focus-area ids and the
        contribution map (None when contributions are not being changed).
        Nothing is written.
        """
        errors = []

        title = (payload.title or "").strip()
        if not title:
            errors.append(field_error("title", "Title is required"))
        elif len(title) > 255:
            errors.append(field_error("title", "Title must be 255 characters or fewer"))

        description = (payload.description or "").strip()
        if not description:
            errors.append(field_error("description", "Description is required"))

        if payload.order_index is None or payload.order_index < 0:
            errors.append(field_error("order_index", "Order index must be a non-negative integer"))

        if payload.start_date and payload.end_date and payload.start_date > payload.end_date:
            errors.append(field_error("end_date", "End date must be on or after the start date"))

        focus_area_ids = list(dict.fromkeys(payload.focus_area_ids or []))
        if not focus_area_ids and payload.category_id is not None:
            focus_area_ids = [payload.category_id]

        if payload.pillar_id is None:
            errors.append(field_error("pillar_id", "Pillar is required"))
        else:
            try:
                allowed = {fa.id for fa in await self.catalog.list_focus_areas_for_pillar(payload.pillar_id)}
            except NotFoundError:
                errors.append(field_error("pillar_id", f"Pillar {payload.pillar_id} not found"))
            else:
                outside = [fa_id for fa_id in focus_area_ids if fa_id not in allowed]
                if outside:
                    errors.append(field_error(
                        "focus_area_ids",
                        f"Focus areas {outside} do not belong to the selected pillar"
                    ))

        if not focus_area_ids:
            errors.append(field_error("focus_area_ids", "At least one focus area is required"))

        if payload.country_id is not None:
            if await self.db.get(Country, payload.country_id) is None:
                errors.append(field_error("country_id", f"Country {payload.country_id} not found"))

        invalid_goals = [goal for goal in payload.sdg_goals if goal not in SDG_GOAL_RANGE]
        if invalid_goals:
            errors.append(field_error("sdg_goals", f"SDG goals must be between 1 and 17, got {invalid_goals}"))

        if gallery_count > settings.MAX_GALLERY_IMAGES:
            errors.append(field_error(
                "gallery",
                f"A project can have at most {settings.MAX_GALLERY_IMAGES} gallery images"
            ))

        contributions = None
        if validate_contributions:
            contributions = await self._validate_contributions(payload, errors)

        if errors:
            raise ValidationError("Project validation failed", errors=errors)

        testimonials = [
            {
                "text": (t.text or "").strip(),
                "author": (t.author or "").strip(),
                "position": (t.position or "").strip(),
            }
            for t in payload.testimonials
        ]
        values = {
            "title": title,
            "description": description,
            "short_description": payload.short_description,
            "location": payload.location,
            "start_date": payload.start_date,
            "end_date": payload.end_date,
            "status": payload.status,
            "order_index": payload.order_index,
            "is_featured": payload.is_featured,
            "is_hidden": payload.is_hidden,
            "pillar_id": payload.pillar_id,
            "country_id": payload.country_id,
            "sdg_goals": sorted(set(payload.sdg_goals)),
            "testimonials": [t for t in testimonials if t["text"] or t["author"] or t["position"]],
        }
        return values, focus_area_ids, contributions

    async def _validate_contributions(self, payload: ProjectInput, errors: List[dict]) -> Dict[int, int]:
        contributions = {}
        for index, item in enumerate(payload.project_impacts):
            field = f"project_impacts[{index}]"
            if item.impact_id is None:
                errors.append(field_error(f"{field}.impact_id", "Impact is required"))
                continue
            if item.impact_id in contributions:
                errors.append(field_error(
                    f"{field}.impact_id",
                    f"Duplicate impact {item.impact_id}: each impact can be listed once per project"
                ))
                continue
            if item.contribution_value is None or item.contribution_value <= 0:
                errors.append(field_error(
                    f"{field}.contribution_value",
                    "Contribution value must be a positive integer"
                ))
                continue
            contributions[item.impact_id] = item.contribution_value

        if contributions:
            existing = set((await self.db.execute(
                select(Impact.id).where(Impact.id.in_(list(contributions)))
            )).scalars().all())
            missing = [impact_id for impact_id in contributions if impact_id not in existing]
            if missing:
                errors.append(field_error("project_impacts", f"Impacts not found: {missing}"))
        return contributions

    async def _unique_slug(self, title: str, exclude_id: Optional[int] = None) -> str:
        base_slug = slugify(title, max_length=SLUG_MAX_LENGTH) or "project"
        slug = base_slug
        counter = 1
        while True:
            query = select(Project.id).where(Project.slug == slug)
            if exclude_id is not None:
                query = query.where(Project.id != exclude_id)
            if (await self.db.execute(query)).first() is None:
                return slug
            slug = f"{base_slug}-{counter}"
            counter += 1

    # Storage helpers

    async def _store(self, file: UploadFile, stored: List[str]) -> str:
        if self.storage is None:
            raise FileUploadError("File storage is not configured", filename=file.filename)
        url = await self.storage.store(file)
        stored.append(url)
        return url

    async def _discard_files(self, urls: List[str]):
        if not urls or self.storage is None:
            return
        for url in urls:
            if not url:
                continue
            try:
                await self.storage.delete(url)
            except Exception as e:
                logger.warning("Failed to delete project media", url=url, error=str(e))

    # Persistence helpers

    async def _get_project_for_update(self, project_id: int) -> Project:
        project = (await self.db.execute(
            select(Project)
            .where(Project.id == project_id, Project.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _locked_contributions(self, project_id: int) -> Dict[int, ProjectImpact]:
        rows = (await self.db.execute(
            select(ProjectImpact)
            .where(ProjectImpact.project_id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalars().all()
        return {row.impact_id: row for row in rows}

    async def _focus_area_ids(self, project_id: int) -> List[int]:
        result = await self.db.execute(
            select(ProjectFocusArea.category_id)
            .where(ProjectFocusArea.project_id == project_id)
            .order_by(ProjectFocusArea.position)
        )
        return list(result.scalars().all())

    async def _replace_focus_areas(self, project_id: int, focus_area_ids: List[int]):
        await self.db.execute(delete(ProjectFocusArea).where(ProjectFocusArea.project_id == project_id))
        for position, category_id in enumerate(focus_area_ids):
            self.db.add(ProjectFocusArea(project_id=project_id, category_id=category_id, position=position))

    async def _write_contributions(self, project_id: int, existing: Dict[int, ProjectImpact], new: Dict[int, int]):
        for impact_id, row in existing.items():
            if impact_id not in new:
                await self.db.delete(row)
        for impact_id, value in new.items():
            row = existing.get(impact_id)
            if row is None:
                self.db.add(ProjectImpact(project_id=project_id, impact_id=impact_id, contribution_value=value))
            elif row.contribution_value != value:
                row.contribution_value = value
        await self.db.flush()

    # Operations

    async def create_project(
        self,
        payload: ProjectInput,
        featured_image: Optional[UploadFile] = None,
        gallery: Optional[List[UploadFile]] = None
    ) -> Project:
        """
        Create a project with its focus areas and contributions.

        Each contribution is added to its impact's total in the same
        transaction. Uploaded files are removed again if anything fails.

        Raises:
            ValidationError: If the payload is invalid; nothing is written
        """
        gallery_files = [f for f in (gallery or []) if f is not None and f.filename]
        values, focus_area_ids, contributions = await self._validate(payload, gallery_count=len(gallery_files))

        stored = []
        try:
            featured_url = None
            if featured_image is not None and featured_image.filename:
                featured_url = await self._store(featured_image, stored)
            gallery_urls = [await self._store(f, stored) for f in gallery_files]

            project = Project(
                **values,
                slug=await self._unique_slug(values["title"]),
                category_id=focus_area_ids[0],
                featured_image=featured_url,
                gallery=gallery_urls,
                is_deleted=False,
            )
            self.db.add(project)
            await self.db.flush()

            await self._replace_focus_areas(project.id, focus_area_ids)
            await self._write_contributions(project.id, {}, contributions)

            if project_counts_towards_totals(project.is_hidden):
                await self.ledger.apply_contribution_deltas(contributions)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard_files(stored)
            raise

        logger.info(
            "Project created",
            project_id=project.id,
            slug=project.slug,
            focus_areas=focus_area_ids,
            contributions=contributions
        )
        return project

    async def _merge(self, project: Project, changes: dict) -> ProjectInput:
        focus_area_ids = await self._focus_area_ids(project.id)
        if not focus_area_ids and project.category_id is not None:
            focus_area_ids = [project.category_id]

        merged = {
            "title": project.title,
            "description": project.description,
            "short_description": project.short_description,
            "location": project.location,
            "start_date": project.start_date,
            "end_date": project.end_date,
            "status": project.status,
            "order_index": project.order_index,
            "is_featured": project.is_featured,
            "is_hidden": project.is_hidden,
            "pillar_id": project.pillar_id,
            "country_id": project.country_id,
            "focus_area_ids": focus_area_ids,
            "sdg_goals": project.sdg_goals or [],
            "testimonials": project.testimonials or [],
            "project_impacts": [],
        }

        for key, value in changes.items():
            if key in ("project_impacts", "category_id"):
                continue
            if value is None and key not in ("short_description", "location", "start_date", "end_date", "country_id"):
                continue
            merged[key] = value

        # A lone category replaces the selection for single-category clients
        if changes.get("category_id") is not None and "focus_area_ids" not in changes:
            merged["focus_area_ids"] = [changes["category_id"]]

        if changes.get("project_impacts") is not None:
            merged["project_impacts"] = changes["project_impacts"]

        return ProjectInput.model_validate(merged)

    async def update_project(
        self,
        project_id: int,
        payload: ProjectUpdate,
        featured_image: Optional[UploadFile] = None,
        gallery: Optional[List[UploadFile]] = None
    ) -> Project:
        """
        Update a project, applying only the net change of each contribution.

        Omitted fields keep their stored values. When ``project_impacts`` is
        omitted the contributions stay as they are; when it is given, rows
        are added, changed or removed and every impact total moves by the
        difference.

        Raises:
            NotFoundError: If the project does not exist or was deleted
            ValidationError: If the merged payload is invalid
        """
        project = await self._get_project_for_update(project_id)
        stored = []
        replaced_media = []
        try:
            changes = payload.model_dump(exclude_unset=True)
            contributions_changed = changes.get("project_impacts") is not None
            gallery_files = [f for f in (gallery or []) if f is not None and f.filename]

            merged = await self._merge(project, changes)
            values, focus_area_ids, contributions = await self._validate(
                merged,
                gallery_count=len(gallery_files),
                validate_contributions=contributions_changed
            )

            existing = await self._locked_contributions(project_id)
            old_contributions = {impact_id: row.contribution_value for impact_id, row in existing.items()}
            new_contributions = contributions if contributions_changed else old_contributions
            was_counted = project_counts_towards_totals(project.is_hidden)

            if featured_image is not None and featured_image.filename:
                new_featured = await self._store(featured_image, stored)
                if project.featured_image:
                    replaced_media.append(project.featured_image)
                project.featured_image = new_featured
            if gallery_files:
                new_gallery = [await self._store(f, stored) for f in gallery_files]
                replaced_media.extend(project.gallery or [])
                project.gallery = new_gallery

            title_changed = values["title"] != project.title
            for key in _SCALAR_FIELDS:
                setattr(project, key, values[key])
            if title_changed:
                project.slug = await self._unique_slug(values["title"], exclude_id=project_id)
            project.category_id = focus_area_ids[0]

            await self._replace_focus_areas(project_id, focus_area_ids)
            if contributions_changed:
                await self._write_contributions(project_id, existing, new_contributions)

            is_counted = project_counts_towards_totals(project.is_hidden)
            deltas = contribution_deltas(
                old_contributions if was_counted else {},
                new_contributions if is_counted else {}
            )
            await self.ledger.apply_contribution_deltas(deltas)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard_files(stored)
            raise

        await self._discard_files(replaced_media)
        logger.info("Project updated", project_id=project_id, deltas=deltas)
        return project

    async def delete_project(self, project_id: int):
        """
        Soft delete a project and withdraw its contributions from the totals.

        The row stays for history; its contributions and media are removed.
        """
        project = await self._get_project_for_update(project_id)
        media = []
        try:
            existing = await self._locked_contributions(project_id)
            counted = {impact_id: row.contribution_value for impact_id, row in existing.items()}
            if not project_counts_towards_totals(project.is_hidden):
                counted = {}

            await self.db.execute(delete(ProjectImpact).where(ProjectImpact.project_id == project_id))
            await self.ledger.apply_contribution_deltas(contribution_deltas(counted, {}))

            media = [url for url in [project.featured_image, *(project.gallery or [])] if url]
            project.is_deleted = True
            project.deleted_at = utcnow()
            project.is_hidden = True
            project.is_featured = False
            project.featured_image = None
            project.gallery = []

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self._discard_files(media)
        logger.info("Project deleted", project_id=project_id, withdrawn=counted)

    async def set_featured(self, project_id: int, value: bool) -> Project:
        project = await self._get_project_for_update(project_id)
        try:
            project.is_featured = value
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("Project featured flag set", project_id=project_id, is_featured=value)
        return project

    async def set_hidden(self, project_id: int, value: bool) -> Project:
        """Hide or show a project; totals move only if hidden projects stop counting."""
        project = await self._get_project_for_update(project_id)
        try:
            was_counted = project_counts_towards_totals(project.is_hidden)
            project.is_hidden = value
            is_counted = project_counts_towards_totals(project.is_hidden)

            if was_counted != is_counted:
                existing = await self._locked_contributions(project_id)
                values = {impact_id: row.contribution_value for impact_id, row in existing.items()}
                await self.ledger.apply_contribution_deltas(
                    contribution_deltas(values if was_counted else {}, values if is_counted else {})
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("Project hidden flag set", project_id=project_id, is_hidden=value)
        return project

    async def toggle_featured(self, project_id: int) -> Project:
        project = await self._get_project_for_update(project_id)
        return await self.set_featured(project_id, not project.is_featured)

    async def toggle_hidden(self, project_id: int) -> Project:
        project = await self._get_project_for_update(project_id)
        return await self.set_hidden(project_id, not project.is_hidden)

    # Gallery

    async def add_gallery_image(self, project_id: int, image: UploadFile) -> Project:
        project = await self._get_project_for_update(project_id)
        stored = []
        try:
            gallery = list(project.gallery or [])
            if len(gallery) >= settings.MAX_GALLERY_IMAGES:
                raise ValidationError(
                    f"A project can have at most {settings.MAX_GALLERY_IMAGES} gallery images",
                    field="gallery"
                )
            if image is None or not image.filename:
                raise ValidationError("Image file is required", field="image")

            url = await self._store(image, stored)
            project.gallery = gallery + [url]
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard_files(stored)
            raise

        logger.info("Gallery image added", project_id=project_id, url=url)
        return project

    async def remove_gallery_image(self, project_id: int, index: int) -> Project:
        project = await self._get_project_for_update(project_id)
        try:
            gallery = list(project.gallery or [])
            if index < 0 or index >= len(gallery):
                raise ValidationError(f"Gallery has no image at index {index}", field="index")
            removed = gallery.pop(index)
            project.gallery = gallery
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self._discard_files([removed])
        logger.info("Gallery image removed", project_id=project_id, index=index)
        return project

    async def clear_gallery(self, project_id: int) -> Project:
        project = await self._get_project_for_update(project_id)
        try:
            removed = list(project.gallery or [])
            project.gallery = []
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self._discard_files(removed)
        logger.info("Gallery cleared", project_id=project_id, removed=len(removed))
        return project
