"""
Abstract write interfaces for index backends.

Importers only receive documents, full backends can also delete and test
for existing documents, which the incremental updates need.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, ClassVar, Type

from ..model.place import PlaceRecord
from ..utils.errors import UnknownBackendError

logger = logging.getLogger(__name__)


class Importer(ABC):
    """Sink for a bulk import of documents."""

    # Unique key for each concrete backend (e.g. 'duckdb', 'json')
    BACKEND: ClassVar[str]

    # Global registry of backends
    _REGISTRY: ClassVar[dict[str, Type['Importer']]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        # Only register classes that define BACKEND themselves
        if "BACKEND" in cls.__dict__:
            key = str(cls.BACKEND).lower()
            if key in Importer._REGISTRY and Importer._REGISTRY[key] is not cls:
                raise RuntimeError(f"Duplicate BACKEND '{key}' for {cls.__name__}")
            Importer._REGISTRY[key] = cls
            logger.debug(f"Registered backend: {cls.__name__} as '{key}'")

    @classmethod
    def from_name(cls, name: str, **kwargs: Any) -> 'Importer':
        """Create a registered backend by name.

        Example:
            backend = Importer.from_name('duckdb', db_path='index.duckdb')
        """
        key = str(name).lower()
        try:
            backend_cls = Importer._REGISTRY[key]
        except KeyError as e:
            raise UnknownBackendError(name, sorted(Importer._REGISTRY.keys())) from e

        if not issubclass(backend_cls, cls):
            raise UnknownBackendError(name, sorted(k for k, v in Importer._REGISTRY.items() if issubclass(v, cls)))
        return backend_cls(**kwargs)

    @abstractmethod
    def add(self, doc: PlaceRecord, object_id: int) -> None:
        """Add a document, replacing any document with the same uid."""
        pass

    @abstractmethod
    def finish(self) -> None:
        """Flush outstanding writes and release resources."""
        pass


class IndexBackend(Importer):
    """A searchable store of documents that supports incremental updates."""

    @abstractmethod
    def add_raw(self, document: dict[str, Any], uid: str) -> None:
        """Add an already serialized document, as read from a dump."""
        pass

    @abstractmethod
    def delete(self, place_id: int, object_id: int) -> None:
        pass

    @abstractmethod
    def exists(self, place_id: int, object_id: int) -> bool:
        pass

    def create(self, doc: PlaceRecord, object_id: int) -> None:
        """Add or replace a document during an update."""
        self.add(doc, object_id)
