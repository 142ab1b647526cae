"""
Reader for place data from a Nominatim-style database.

Turns rows of `placex` (places) and `location_property_osmline` (address
interpolations) into fully resolved PlaceResult objects.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
from typing import Any, Callable, Iterable, Optional

import duckdb

from ..db.db import extract_geometry, fetch_dicts, get_map, has_column, iter_dicts
from ..model.address import AddressRow, AddressRowList
from ..model.names import NameMap
from ..model.place import PlaceRecord
from ..utils.errors import PlaceDataError
from .address_cache import AddressCache
from .result import InterpolationRow, PlaceResult

logger = logging.getLogger(__name__)

ResultSink = Callable[[PlaceResult], None]

PARENT_COLS = """
       parent.class AS parent_class, parent.type AS parent_type,
       parent.rank_address AS parent_rank_address, parent.name AS parent_name,
"""

SELECT_PLACEX = """
SELECT p.place_id, p.osm_type, p.osm_id, p.class, p.type, p.name, p.postcode,
       p.address, p.extratags, p.geometry, p.parent_place_id, p.linked_place_id,
       p.rank_address, p.rank_search, p.importance, p.country_code, p.centroid,
""" + PARENT_COLS + """
       (SELECT list(pa.address_place_id ORDER BY pa.cached_rank_address DESC, pa.place_id = p.place_id DESC)
          FROM place_addressline pa
         WHERE pa.place_id IN (p.place_id,
                               CASE WHEN p.rank_search = 30 THEN coalesce(p.parent_place_id, p.place_id)
                                    ELSE p.place_id END)
           AND pa.isaddress) AS addresslines
  FROM placex p LEFT JOIN placex parent ON p.parent_place_id = parent.place_id
"""

SELECT_OSMLINE = """
SELECT p.place_id, p.osm_id, p.parent_place_id, p.startnumber, p.endnumber, p.{step_col},
       p.postcode, p.country_code, p.linegeo,
""" + PARENT_COLS + """
       (SELECT list(pa.address_place_id ORDER BY pa.cached_rank_address DESC, pa.place_id = p.place_id DESC)
          FROM place_addressline pa
         WHERE pa.place_id IN (p.place_id, coalesce(p.parent_place_id, p.place_id))
           AND pa.isaddress) AS addresslines
  FROM location_property_osmline p LEFT JOIN placex parent ON p.parent_place_id = parent.place_id
 WHERE p.startnumber IS NOT NULL
"""


@contextmanager
def row_errors(table: str, row: dict[str, Any]):
    """Report mapping failures of a single source row as PlaceDataError."""
    try:
        yield
    except (ValueError, TypeError, KeyError) as e:
        raise PlaceDataError(table, row.get("place_id"), str(e)) from e


def place_from_row(row: dict[str, Any], languages: Iterable[str]) -> PlaceRecord:
    """Map the plain attributes of a placex row. Address and country are not filled."""
    importance = row.get("importance")
    if importance is None:
        importance = 0.75 - (row.get("rank_search") or 0) / 40

    doc = PlaceRecord(
        place_id=row["place_id"],
        osm_type=row["osm_type"],
        osm_id=row["osm_id"],
        class_key=row["class"],
        class_value=row["type"],
        name=NameMap.make_place_names(get_map(row.get("name")), languages),
        extra_tags=get_map(row.get("extratags")),
        bbox=extract_geometry(row.get("geometry")),
        centroid=extract_geometry(row.get("centroid")),
        parent_place_id=row.get("parent_place_id"),
        linked_place_id=row.get("linked_place_id"),
        rank_address=row.get("rank_address") or 0,
        importance=importance,
        country_code=row.get("country_code"),
        postcode=row.get("postcode"),
    )
    return doc


class NominatimConnector:
    """
    Source reader for a Nominatim database held in DuckDB.

    The interpolation table exists in two layouts: old databases describe
    the step as a string column `interpolationtype`, newer ones as an
    integer `step`. The layout is probed once on construction.
    """

    def __init__(self, con: duckdb.DuckDBPyConnection, languages: Iterable[str]):
        self.con = con
        self.languages = list(languages)
        self.address_cache = AddressCache(self.languages)
        self.country_names: Optional[dict[str, NameMap]] = None
        self.has_new_style_interpolation = has_column(con, "location_property_osmline", "step")
        self._osmline_sql = SELECT_OSMLINE.format(
            step_col="step" if self.has_new_style_interpolation else "interpolationtype")

    # --- Countries --------------------------------------------------------------
    def load_country_names(self) -> None:
        if self.country_names is not None:
            return
        names: dict[str, NameMap] = {"": NameMap()}  # places outside any country
        for row in fetch_dicts(self.con, "SELECT country_code, name FROM country_name"):
            names[row["country_code"]] = NameMap.make_address_names(get_map(row["name"]), self.languages)
        self.country_names = names
        logger.info(f"Loaded names for {len(names) - 1} countries")

    def get_countries(self) -> list[str]:
        self.load_country_names()
        return list(self.country_names)

    def _country_names_for(self, country_code: Optional[str]) -> Optional[NameMap]:
        self.load_country_names()
        return self.country_names.get(country_code or "")

    # --- Row mapping ------------------------------------------------------------
    def _add_parent(self, addresses: AddressRowList, row: dict[str, Any]) -> None:
        if row.get("parent_class") is not None:
            addresses.set(AddressRow.make_row(
                get_map(row.get("parent_name")),
                row["parent_class"],
                row["parent_type"],
                row.get("parent_rank_address") or 0,
                self.languages,
            ))

    def _address_list(self, row: dict[str, Any], load_missing: bool) -> AddressRowList:
        if load_missing:
            return self.address_cache.get_or_load_address_list(row.get("addresslines"), self.con)
        return self.address_cache.get_address_list(row.get("addresslines"))

    def place_result(self, row: dict[str, Any], load_missing: bool = False) -> PlaceResult:
        with row_errors("placex", row):
            doc = place_from_row(row, self.languages)
            address = get_map(row.get("address"))

            addresses = self._address_list(row, load_missing)
            if row.get("rank_search") == 30:
                self._add_parent(addresses, row)

            doc.complete_address(addresses, address)
            doc.set_country(self._country_names_for(row.get("country_code")))

            return PlaceResult.from_address(doc, address)

    def interpolation_row(self, row: dict[str, Any]) -> InterpolationRow:
        common = dict(
            place_id=row["place_id"],
            osm_id=row["osm_id"],
            parent_place_id=row.get("parent_place_id") or 0,
            geometry=extract_geometry(row.get("linegeo")),
            country_code=row.get("country_code"),
            postcode=row.get("postcode"),
        )
        start, end = int(row["startnumber"]), int(row["endnumber"] or row["startnumber"])
        if self.has_new_style_interpolation:
            return InterpolationRow.from_step(start, end, row.get("step"), **common)
        return InterpolationRow.from_legacy(start, end, row.get("interpolationtype"), **common)

    def interpolation_result(self, row: dict[str, Any], load_missing: bool = False) -> PlaceResult:
        with row_errors("location_property_osmline", row):
            line = self.interpolation_row(row)
            doc = PlaceRecord(
                place_id=line.place_id,
                osm_type="W",
                osm_id=line.osm_id,
                class_key="place",
                class_value="house_number",
                parent_place_id=line.parent_place_id,
                country_code=line.country_code,
                postcode=line.postcode,
            )

            addresses = self._address_list(row, load_missing)
            self._add_parent(addresses, row)
            doc.complete_address(addresses)
            doc.set_country(self._country_names_for(row.get("country_code")))

            return PlaceResult.from_interpolation(doc, line)

    # --- Bulk reading -----------------------------------------------------------
    def read_country(self, country_code: str, sink: ResultSink) -> int:
        """
        Resolve every indexable place and interpolation of a country and pass
        the results to `sink`. The empty country code selects places outside
        of any country. Returns the number of results passed on.
        """
        cnames = self._country_names_for(country_code)
        if cnames is None:
            logger.warning(f"Unknown country code '{country_code}'. Skipping.")
            return 0

        self.address_cache.clear()
        self.address_cache.load_country_addresses(self.con, country_code)

        if country_code == "":
            where, params = "p.country_code IS NULL", []
        else:
            where, params = "p.country_code = ?", [country_code]

        count = 0
        place_sql = (SELECT_PLACEX + " WHERE p.linked_place_id IS NULL AND p.centroid IS NOT NULL AND "
                     + where + " ORDER BY p.geometry_sector, p.parent_place_id")
        for row in iter_dicts(self.con, place_sql, params):
            result = self._safe_result(self.place_result, row)
            if result is not None and result.is_useful_for_index():
                sink(result)
                count += 1

        osmline_sql = self._osmline_sql + " AND " + where + " ORDER BY p.geometry_sector, p.parent_place_id"
        for row in iter_dicts(self.con, osmline_sql, params):
            result = self._safe_result(self.interpolation_result, row)
            if result is not None and result.is_useful_for_index():
                sink(result)
                count += 1

        return count

    @staticmethod
    def _safe_result(mapper: Callable[..., PlaceResult], row: dict[str, Any]) -> Optional[PlaceResult]:
        try:
            return mapper(row)
        except PlaceDataError as e:
            logger.error(f"Skipping place: {e}")
            return None

    # --- Single place lookups ---------------------------------------------------
    def get_by_place_id(self, place_id: int) -> Optional[list[PlaceRecord]]:
        rows = fetch_dicts(self.con, SELECT_PLACEX + " WHERE p.place_id = ? AND p.indexed_status = 0", [place_id])
        if not rows:
            return None
        return self.place_result(rows[0], load_missing=True).docs_with_house_number()

    def get_interpolations_by_place_id(self, place_id: int) -> Optional[list[PlaceRecord]]:
        rows = fetch_dicts(self.con, self._osmline_sql + " AND p.place_id = ? AND p.indexed_status = 0", [place_id])
        if not rows:
            return None
        return self.interpolation_result(rows[0], load_missing=True).docs_with_house_number()

    # --- Database status --------------------------------------------------------
    def get_last_import_date(self) -> Optional[datetime]:
        result = self.con.execute(
            "SELECT lastimportdate FROM import_status ORDER BY lastimportdate DESC LIMIT 1"
        ).fetchone()
        return result[0] if result else None

    def prepare_database(self) -> None:
        """Make sure the country index used by `read_country` exists."""
        result = self.con.execute(
            """
            SELECT COUNT(*) FROM duckdb_indexes()
            WHERE table_name = 'placex' AND sql LIKE '%(country_code)%'
            """
        ).fetchone()
        if not result or result[0] == 0:
            logger.info("Creating index over countries.")
            self.con.execute("CREATE INDEX placex_country_code_idx ON placex (country_code)")
