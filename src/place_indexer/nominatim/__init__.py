"""
- Connector: reads and resolves places of a Nominatim-style database
- Address cache: ancestor rows per country
- Result: house number expansion
- Importer: bulk import into a backend
- Updater: incremental updates from the change table
"""

from .connector import NominatimConnector
from .result import PlaceResult, InterpolationRow, StepMode
from .importer import import_from_source
from .updater import UpdateReconciler, ReconcileStats

__all__ = [
    'NominatimConnector',
    'PlaceResult',
    'InterpolationRow',
    'StepMode',
    'import_from_source',
    'UpdateReconciler',
    'ReconcileStats',
]
