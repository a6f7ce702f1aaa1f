"""
Services package - Business logic layer
"""

from impact_api.services.file_storage import FileStorage, LocalFileStorage, R2FileStorage
from impact_api.services.impact_ledger import ImpactLedger
from impact_api.services.catalog import PillarCatalog
from impact_api.services.country_registry import CountryRegistry
from impact_api.services.project_composer import ProjectComposer
from impact_api.services.projections import ProjectionService

__all__ = [
    'FileStorage',
    'LocalFileStorage',
    'R2FileStorage',
    'ImpactLedger',
    'PillarCatalog',
    'CountryRegistry',
    'ProjectComposer',
    'ProjectionService'
]
