"""
Incremental updates from the change-capture table of the source database.

The source records every place that was re-indexed or deleted in
`photon_updates`. A reconciliation pass drains that table and rewrites the
documents of the affected places in the index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading
from typing import Any, Optional

from ..backends.base import IndexBackend
from ..db.db import fetch_dicts, has_table, translate_connection_errors
from ..utils.errors import PlaceDataError
from ..utils.pipeline_mixin import PipelineMixin
from .connector import NominatimConnector

logger = logging.getLogger(__name__)

UPDATE_TABLE = "photon_updates"

DDL_UPDATES = f"""
CREATE TABLE {UPDATE_TABLE} (
    rel TEXT,
    place_id BIGINT,
    operation TEXT,
    indexed_date TIMESTAMP
);
"""


@dataclass(frozen=True)
class UpdateRow:
    place_id: int
    is_delete: bool
    update_date: Optional[datetime]


@dataclass
class ReconcileStats:
    places_updated: int = 0
    places_deleted: int = 0
    interpolations_updated: int = 0
    interpolations_deleted: int = 0
    skipped: list[int] = field(default_factory=list)


class UpdateReconciler(PipelineMixin):
    """
    Applies pending changes of the source to an index backend.

    Only one pass runs at a time. A pass that is triggered while another
    one is running returns immediately.
    """

    MODALITY = 'update'

    def __init__(self, connector: NominatimConnector, backend: IndexBackend):
        self.connector = connector
        self.backend = backend
        self._lock = threading.Lock()

    @property
    def con(self):
        return self.connector.con

    # --- Setup --------------------------------------------------------------------
    def init_updates(self) -> None:
        """(Re-)create the change-capture table. Filling it is left to the source database."""
        logger.info("Creating tracking tables")
        self.con.execute(f"DROP TABLE IF EXISTS {UPDATE_TABLE}")
        self.con.execute(DDL_UPDATES)

    def is_set_up_for_updates(self) -> bool:
        return has_table(self.con, UPDATE_TABLE)

    def is_busy(self) -> bool:
        return self._lock.locked()

    # --- Pass ---------------------------------------------------------------------
    def _load_pipeline(self, stats: ReconcileStats, **kwargs: Any):
        return [
            ('Load countries', self.connector.load_country_names, {}),
            ('Update places', self.update_from_placex, {'stats': stats}),
            ('Update interpolations', self.update_from_interpolations, {'stats': stats}),
            ('Finish', self.backend.finish, {}),
        ]

    def update(self) -> Optional[ReconcileStats]:
        """
        Run one reconciliation pass. Returns the statistics of the pass or
        None when another pass is already in progress.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Update already in progress")
            return None

        try:
            stats = ReconcileStats()
            with translate_connection_errors("nominatim"):
                self._execute_pipeline(stats=stats)
            logger.info("Finished updating")
            return stats
        finally:
            self._lock.release()

    def get_places(self, table: str) -> list[UpdateRow]:
        """Take all pending changes for `table` out of the change table, newest per place only."""
        self.con.begin()
        try:
            rows = fetch_dicts(
                self.con,
                f"DELETE FROM {UPDATE_TABLE} WHERE rel = ? RETURNING place_id, operation, indexed_date",
                [table],
            )
            self.con.commit()
        except Exception:
            self.con.rollback()
            raise

        newest: dict[int, UpdateRow] = {}
        for row in rows:
            update = UpdateRow(int(row["place_id"]), row["operation"] == "DELETE", row["indexed_date"])
            known = newest.get(update.place_id)
            if known is None or _is_newer(update, known):
                newest[update.place_id] = update

        return [newest[pid] for pid in sorted(newest)]

    @staticmethod
    def _skip(place_id: int, error: Exception, stats: ReconcileStats) -> None:
        logger.error(f"Cannot update place {place_id}, keeping its documents: {error}")
        stats.skipped.append(place_id)

    def _delete_orphans(self, place_id: int, object_id: int) -> None:
        while self.backend.exists(place_id, object_id):
            self.backend.delete(place_id, object_id)
            object_id += 1

    def update_from_placex(self, stats: ReconcileStats) -> None:
        logger.info("Starting place updates")
        for place in self.get_places("placex"):
            written = 0
            check_for_multidoc = True

            if not place.is_delete:
                try:
                    docs = self.connector.get_by_place_id(place.place_id)
                except PlaceDataError as e:
                    self._skip(place.place_id, e, stats)
                    continue
                if docs and docs[0].is_useful_for_index():
                    check_for_multidoc = docs[0].rank_address == 30
                    for object_id, doc in enumerate(docs):
                        self.backend.create(doc, object_id)
                    written = len(docs)
                    stats.places_updated += 1

            if written == 0:
                self.backend.delete(place.place_id, 0)
                written = 1
                stats.places_deleted += 1

            if check_for_multidoc:
                self._delete_orphans(place.place_id, written)

        logger.info(f"{stats.places_updated} places created or updated, {stats.places_deleted} deleted")

    def update_from_interpolations(self, stats: ReconcileStats) -> None:
        logger.info("Starting interpolations")
        for place in self.get_places("location_property_osmline"):
            written = 0

            if not place.is_delete:
                try:
                    docs = self.connector.get_interpolations_by_place_id(place.place_id)
                except PlaceDataError as e:
                    self._skip(place.place_id, e, stats)
                    continue
                if docs and docs[0].is_useful_for_index():
                    for object_id, doc in enumerate(docs):
                        self.backend.create(doc, object_id)
                    written = len(docs)
                    stats.interpolations_updated += 1

            if written == 0:
                stats.interpolations_deleted += 1

            self._delete_orphans(place.place_id, written)

        logger.info(f"{stats.interpolations_updated} interpolations created or updated, "
                    f"{stats.interpolations_deleted} deleted")


def _is_newer(a: UpdateRow, b: UpdateRow) -> bool:
    if b.update_date is None:
        return a.update_date is not None
    return a.update_date is not None and a.update_date > b.update_date
