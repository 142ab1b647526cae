"""Index backends.

This module imports all backends to register them.
"""

from .base import Importer, IndexBackend
from .duckdb_backend import DuckDBIndexBackend
from .dump import JsonDumper, JsonDumpReader
from .serializer import serialize_document

__all__ = [
    'Importer',
    'IndexBackend',
    'DuckDBIndexBackend',
    'JsonDumper',
    'JsonDumpReader',
    'serialize_document',
]
