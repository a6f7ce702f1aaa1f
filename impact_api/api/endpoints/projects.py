"""
Project API Routes

Create and update take multipart forms so images can travel with the
project; structured fields (focus areas, contributions, SDG goals,
testimonials) are JSON-encoded form values.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, UploadFile, File, Form, status
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.security import require_permission, PROJECTS_WRITE
from impact_api.db.database import get_db
from impact_api.models.project import ProjectStatusEnum
from impact_api.models.user import User
from impact_api.schemas.common import APIResponse, create_success_response
from impact_api.schemas.project import ProjectInput, ProjectUpdate
from impact_api.services.file_storage import FileStorage, get_file_storage
from impact_api.services.project_composer import ProjectComposer
from impact_api.services.projections import ProjectionService
from impact_api.utils.form_parsing import parse_json_list, build_model, drop_unset

router = APIRouter()


def _form_payload(
    title, description, short_description, location, start_date, end_date, status_value,
    order_index, is_featured, is_hidden, pillar_id, category_id, country_id,
    focus_area_ids, sdg_goals, testimonials, project_impacts
) -> dict:
    return drop_unset({
        "title": title,
        "description": description,
        "short_description": short_description,
        "location": location,
        "start_date": start_date,
        "end_date": end_date,
        "status": status_value,
        "order_index": order_index,
        "is_featured": is_featured,
        "is_hidden": is_hidden,
        "pillar_id": pillar_id,
        "category_id": category_id,
        "country_id": country_id,
        "focus_area_ids": parse_json_list(focus_area_ids, "focus_area_ids"),
        "sdg_goals": parse_json_list(sdg_goals, "sdg_goals"),
        "testimonials": parse_json_list(testimonials, "testimonials"),
        "project_impacts": parse_json_list(project_impacts, "project_impacts"),
    })


@router.get("/", response_model=APIResponse)
async def list_projects(
    pillar_id: Optional[int] = Query(None, alias="pillarId"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    country_id: Optional[int] = Query(None, alias="countryId"),
    status_filter: Optional[ProjectStatusEnum] = Query(None, alias="status"),
    featured: Optional[bool] = Query(None),
    hidden: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """List live projects with pillar, focus area and country names"""
    projects = await ProjectionService(db).list_projects(
        pillar_id=pillar_id,
        category_id=category_id,
        country_id=country_id,
        status=status_filter,
        featured=featured,
        hidden=hidden,
        limit=limit,
        offset=offset,
    )
    return create_success_response(projects, "Projects retrieved successfully", count=len(projects))


@router.get("/featured", response_model=APIResponse)
async def get_featured_projects(
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db)
):
    projects = await ProjectionService(db).get_featured_projects(limit=limit)
    return create_success_response(projects, "Featured projects retrieved successfully", count=len(projects))


@router.get("/stats", response_model=APIResponse)
async def get_project_stats(db: AsyncSession = Depends(get_db)):
    stats = await ProjectionService(db).get_project_stats()
    return create_success_response(stats, "Project statistics retrieved successfully")


@router.get("/slug/{slug}", response_model=APIResponse)
async def get_project_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    project = await ProjectionService(db).get_project_by_slug(slug)
    return create_success_response(project, "Project retrieved successfully")


@router.get("/{project_id}", response_model=APIResponse)
async def get_project(project_id: int, db: AsyncSession = Depends(get_db)):
    project = await ProjectionService(db).get_project_with_associations(project_id)
    return create_success_response(project, "Project retrieved successfully")


@router.get("/{project_id}/impacts", response_model=APIResponse)
async def get_project_impacts(project_id: int, db: AsyncSession = Depends(get_db)):
    impacts = await ProjectionService(db).get_project_impacts(project_id)
    return create_success_response(impacts, "Project impacts retrieved successfully", count=len(impacts))


@router.post("/", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    title: str = Form(...),
    description: str = Form(...),
    short_description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    start_date: Optional[date] = Form(None),
    end_date: Optional[date] = Form(None),
    status_value: Optional[str] = Form(None, alias="status"),
    order_index: Optional[int] = Form(None),
    is_featured: Optional[bool] = Form(None),
    is_hidden: Optional[bool] = Form(None),
    pillar_id: Optional[int] = Form(None, alias="pillarId"),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    country_id: Optional[int] = Form(None, alias="countryId"),
    focus_area_ids: Optional[str] = Form(None, description="JSON array of focus area ids"),
    sdg_goals: Optional[str] = Form(None, description="JSON array of SDG numbers"),
    testimonials: Optional[str] = Form(None, description="JSON array of {text, author, position}"),
    project_impacts: Optional[str] = Form(None, description="JSON array of {impact_id, contribution_value}"),
    featured_image: Optional[UploadFile] = File(None),
    gallery: Optional[List[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    """Create a project and add its contributions to the impact totals"""
    payload = build_model(ProjectInput, _form_payload(
        title, description, short_description, location, start_date, end_date, status_value,
        order_index, is_featured, is_hidden, pillar_id, category_id, country_id,
        focus_area_ids, sdg_goals, testimonials, project_impacts
    ))

    project = await ProjectComposer(db, storage).create_project(payload, featured_image, gallery)
    detail = await ProjectionService(db).get_project_with_associations(project.id)
    return create_success_response(detail, "Project created successfully")


@router.put("/{project_id}", response_model=APIResponse)
async def update_project(
    project_id: int,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    short_description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    start_date: Optional[date] = Form(None),
    end_date: Optional[date] = Form(None),
    status_value: Optional[str] = Form(None, alias="status"),
    order_index: Optional[int] = Form(None),
    is_featured: Optional[bool] = Form(None),
    is_hidden: Optional[bool] = Form(None),
    pillar_id: Optional[int] = Form(None, alias="pillarId"),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    country_id: Optional[int] = Form(None, alias="countryId"),
    focus_area_ids: Optional[str] = Form(None),
    sdg_goals: Optional[str] = Form(None),
    testimonials: Optional[str] = Form(None),
    project_impacts: Optional[str] = Form(None),
    featured_image: Optional[UploadFile] = File(None),
    gallery: Optional[List[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    """Update a project; contribution changes move the impact totals by the difference"""
    payload = build_model(ProjectUpdate, _form_payload(
        title, description, short_description, location, start_date, end_date, status_value,
        order_index, is_featured, is_hidden, pillar_id, category_id, country_id,
        focus_area_ids, sdg_goals, testimonials, project_impacts
    ))

    await ProjectComposer(db, storage).update_project(project_id, payload, featured_image, gallery)
    detail = await ProjectionService(db).get_project_with_associations(project_id)
    return create_success_response(detail, "Project updated successfully")


@router.delete("/{project_id}", response_model=APIResponse)
async def delete_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    await ProjectComposer(db, storage).delete_project(project_id)
    return create_success_response(None, "Project deleted successfully")


@router.patch("/{project_id}/toggle-featured", response_model=APIResponse)
async def toggle_project_featured(
    project_id: int,
    value: Optional[bool] = Query(None, description="Set explicitly instead of toggling"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    composer = ProjectComposer(db)
    if value is None:
        project = await composer.toggle_featured(project_id)
    else:
        project = await composer.set_featured(project_id, value)
    return create_success_response(
        {"id": project.id, "is_featured": project.is_featured},
        "Project featured status updated"
    )


@router.patch("/{project_id}/toggle-hidden", response_model=APIResponse)
async def toggle_project_hidden(
    project_id: int,
    value: Optional[bool] = Query(None, description="Set explicitly instead of toggling"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    composer = ProjectComposer(db)
    if value is None:
        project = await composer.toggle_hidden(project_id)
    else:
        project = await composer.set_hidden(project_id, value)
    return create_success_response(
        {"id": project.id, "is_hidden": project.is_hidden},
        "Project visibility updated"
    )


@router.post("/{project_id}/gallery", response_model=APIResponse)
async def add_gallery_image(
    project_id: int,
    image: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    project = await ProjectComposer(db, storage).add_gallery_image(project_id, image)
    return create_success_response({"id": project.id, "gallery": project.gallery}, "Gallery image added")


@router.delete("/{project_id}/gallery/{index}", response_model=APIResponse)
async def remove_gallery_image(
    project_id: int,
    index: int,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    project = await ProjectComposer(db, storage).remove_gallery_image(project_id, index)
    return create_success_response({"id": project.id, "gallery": project.gallery}, "Gallery image removed")


@router.delete("/{project_id}/gallery", response_model=APIResponse)
async def clear_gallery(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_permission(PROJECTS_WRITE))
):
    project = await ProjectComposer(db, storage).clear_gallery(project_id)
    return create_success_response({"id": project.id, "gallery": project.gallery}, "Gallery cleared")
