"""
Cache for the address rows of a country.

Address resolution looks up the same few thousand ancestors (cities, streets,
states, ...) for millions of places. The cache keeps them by place id, so
that an address line only needs a dictionary lookup per ancestor.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import duckdb

from ..db.db import fetch_dicts, get_map
from ..model.address import AddressRow, AddressRowList

logger = logging.getLogger(__name__)


class AddressCache:
    """
    Place-id keyed store of AddressRow objects.

    The cache must be fully loaded for a country (`load_country_addresses`)
    before places of that country are resolved. It is not safe to load more
    rows while another thread resolves places from it.
    """

    SQL_SELECT = "SELECT place_id, name, class, type, rank_address FROM placex"
    SQL_COUNTRY_WHERE = " WHERE rank_address BETWEEN 5 AND 25 AND linked_place_id IS NULL"

    def __init__(self, languages: Iterable[str]):
        self.languages = list(languages)
        self._addresses: dict[int, AddressRow] = {}

    def __len__(self) -> int:
        return len(self._addresses)

    def __contains__(self, place_id: int) -> bool:
        return place_id in self._addresses

    def clear(self) -> None:
        self._addresses.clear()

    def _add_rows(self, rows: list[dict]) -> None:
        for row in rows:
            self._addresses[int(row["place_id"])] = AddressRow.make_row(
                get_map(row["name"]),
                row["class"],
                row["type"],
                int(row["rank_address"] or 0),
                self.languages,
            )

    def load_country_addresses(self, con: duckdb.DuckDBPyConnection, country_code: str) -> None:
        if country_code == "":
            rows = fetch_dicts(con, self.SQL_SELECT + self.SQL_COUNTRY_WHERE + " AND country_code IS NULL")
        else:
            rows = fetch_dicts(con, self.SQL_SELECT + self.SQL_COUNTRY_WHERE + " AND country_code = ?",
                               [country_code])
        self._add_rows(rows)

        if rows:
            logger.info(f"Loaded {len(rows)} address places for country '{country_code}'")

    def get_address_list(self, address_place_ids: Optional[Sequence[int]]) -> AddressRowList:
        """Build the address of a place from cached rows only. Unknown ids are ignored."""
        rows = AddressRowList()
        for place_id in address_place_ids or ():
            if place_id and place_id > 0:
                row = self._addresses.get(int(place_id))
                if row is not None:
                    rows.set(row)
        return rows

    def get_or_load_address_list(
        self,
        address_place_ids: Optional[Sequence[int]],
        con: duckdb.DuckDBPyConnection,
    ) -> AddressRowList:
        """Like `get_address_list` but fetches missing rows from the database first."""
        missing = [int(p) for p in address_place_ids or () if p and p > 0 and int(p) not in self._addresses]
        if missing:
            self._add_rows(fetch_dicts(con, self.SQL_SELECT + " WHERE list_contains(CAST(? AS BIGINT[]), place_id)", [missing]))
        return self.get_address_list(address_place_ids)
