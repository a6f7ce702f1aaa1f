"""
Main API router
"""

from fastapi import APIRouter

from impact_api.api.endpoints import impacts, projects, pillars, categories, countries

api_router = APIRouter()

api_router.include_router(impacts.router, prefix="/impacts", tags=["Impacts"])
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(pillars.router, prefix="/pillars", tags=["Pillars"])
api_router.include_router(categories.router, prefix="/categories", tags=["Focus Areas"])
api_router.include_router(countries.router, prefix="/countries", tags=["Countries"])
