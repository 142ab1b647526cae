"""
Bulk import of a whole source database into an index backend.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Optional

from ..backends.base import Importer
from ..db.db import translate_connection_errors
from ..utils.pipeline_mixin import PipelineMixin
from .connector import NominatimConnector
from .result import PlaceResult

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 50000


class ImportRun(PipelineMixin):
    """
    One full import: every requested country is read from the source and
    all documents are passed to the importer. Each country is one pipeline step.
    """

    MODALITY = 'import'

    def __init__(self, connector: NominatimConnector, importer: Importer,
                 country_codes: Optional[Iterable[str]] = None):
        self.connector = connector
        self.importer = importer
        self.country_codes = [c.lower() for c in country_codes or ()]
        self.total = 0
        self._start = 0.0

    def _load_pipeline(self, **kwargs: Any):
        countries = self.country_codes or self.connector.get_countries()
        steps = [(f"Country '{cc or '--'}'", self.import_country, {'country_code': cc}) for cc in countries]
        steps.append(('Finish', self.importer.finish, {}))
        return steps

    def _add(self, result: PlaceResult) -> None:
        for object_id, doc in enumerate(result.docs_with_house_number()):
            self.importer.add(doc, object_id)
            self.total += 1

            if self.total % PROGRESS_INTERVAL == 0:
                self._log_progress()

    def _log_progress(self) -> None:
        rate = self.total / max(time.monotonic() - self._start, 1e-6)
        logger.info(f"Imported {self.total} documents [{rate:.1f}/second]")

    def import_country(self, country_code: str) -> int:
        return self.connector.read_country(country_code, self._add)

    def run(self) -> int:
        self._start = time.monotonic()
        with translate_connection_errors("nominatim"):
            self._execute_pipeline()
        self._log_progress()
        return self.total


def import_from_source(
    connector: NominatimConnector,
    importer: Importer,
    country_codes: Optional[Iterable[str]] = None,
) -> int:
    """Import all places of the given countries (all countries if empty). Returns the number of documents."""
    return ImportRun(connector, importer, country_codes).run()
