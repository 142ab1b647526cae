from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


import duckdb  # type: ignore

SCHEMA = """
CREATE TABLE placex (
    place_id BIGINT,
    parent_place_id BIGINT,
    linked_place_id BIGINT,
    indexed_status INTEGER DEFAULT 0,
    osm_type VARCHAR,
    osm_id BIGINT,
    class VARCHAR,
    type VARCHAR,
    name VARCHAR,
    address VARCHAR,
    extratags VARCHAR,
    postcode VARCHAR,
    rank_address INTEGER,
    rank_search INTEGER,
    importance DOUBLE,
    country_code VARCHAR,
    geometry VARCHAR,
    centroid VARCHAR,
    geometry_sector INTEGER DEFAULT 0
);
CREATE TABLE place_addressline (
    place_id BIGINT,
    address_place_id BIGINT,
    cached_rank_address INTEGER,
    isaddress BOOLEAN,
    fromarea BOOLEAN,
    distance DOUBLE
);
CREATE TABLE country_name (country_code VARCHAR, name VARCHAR);
CREATE TABLE import_status (lastimportdate TIMESTAMP);
"""

OSMLINE_NEW = """
CREATE TABLE location_property_osmline (
    place_id BIGINT,
    osm_id BIGINT,
    parent_place_id BIGINT,
    indexed_status INTEGER DEFAULT 0,
    startnumber INTEGER,
    endnumber INTEGER,
    step INTEGER,
    postcode VARCHAR,
    country_code VARCHAR,
    linegeo VARCHAR,
    geometry_sector INTEGER DEFAULT 0
);
"""

OSMLINE_LEGACY = OSMLINE_NEW.replace("step INTEGER", "interpolationtype VARCHAR")

COUNTRIES = {
    "de": {"name": "Deutschland", "name:en": "Germany"},
    "nl": {"name": "Nederland", "name:en": "Netherlands"},
    "us": {"name": "United States", "name:de": "Vereinigte Staaten"},
}


def _create_db(osmline_ddl: str) -> duckdb.DuckDBPyConnection:
    con = duckdb.connect()
    con.execute(SCHEMA)
    con.execute(osmline_ddl)
    for cc, names in COUNTRIES.items():
        con.execute("INSERT INTO country_name VALUES (?, ?)", [cc, json.dumps(names)])
    return con


@pytest.fixture
def nominatim_db():
    """In-memory database laid out like a Nominatim database with new-style interpolations."""
    con = _create_db(OSMLINE_NEW)
    yield con
    con.close()


@pytest.fixture
def legacy_nominatim_db():
    con = _create_db(OSMLINE_LEGACY)
    yield con
    con.close()


def _insert(con: duckdb.DuckDBPyConnection, table: str, data: dict[str, Any]) -> None:
    columns = list(data)
    values = [json.dumps(v) if isinstance(v, dict) else v for v in data.values()]
    con.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
        values,
    )


class PlacexTestRow:
    """Builder for rows of the placex table."""

    _next_id = 10000

    def __init__(self, key: str, value: str):
        PlacexTestRow._next_id += 1
        self.place_id = PlacexTestRow._next_id
        self.data: dict[str, Any] = {
            "place_id": self.place_id,
            "osm_type": "N",
            "osm_id": self.place_id + 100000,
            "class": key,
            "type": value,
            "rank_address": 30,
            "rank_search": 30,
            "country_code": "us",
            "centroid": "POINT(1.0 34.0)",
            "indexed_status": 0,
        }
        self._names: dict[str, str] = {}
        self._address: dict[str, str] = {}

    def id(self, place_id: int) -> PlacexTestRow:
        self.place_id = place_id
        self.data["place_id"] = place_id
        return self

    def osm(self, osm_type: str, osm_id: int) -> PlacexTestRow:
        self.data["osm_type"] = osm_type
        self.data["osm_id"] = osm_id
        return self

    def name(self, *args: str) -> PlacexTestRow:
        """`name("Foo")` sets the default name, `name("name:en", "Foo")` any other key."""
        if len(args) == 1:
            self._names["name"] = args[0]
        else:
            self._names[args[0]] = args[1]
        return self

    def addr(self, key: str, value: str) -> PlacexTestRow:
        self._address[key] = value
        return self

    def extra_tags(self, tags: dict[str, str]) -> PlacexTestRow:
        self.data["extratags"] = tags
        return self

    def ranks(self, rank: int) -> PlacexTestRow:
        self.data["rank_address"] = rank
        self.data["rank_search"] = rank
        return self

    def country(self, country_code: Optional[str]) -> PlacexTestRow:
        self.data["country_code"] = country_code
        return self

    def postcode(self, postcode: str) -> PlacexTestRow:
        self.data["postcode"] = postcode
        return self

    def importance(self, importance: float) -> PlacexTestRow:
        self.data["importance"] = importance
        return self

    def centroid(self, lon: float, lat: float) -> PlacexTestRow:
        self.data["centroid"] = f"POINT({lon} {lat})"
        return self

    def geometry(self, wkt: str) -> PlacexTestRow:
        self.data["geometry"] = wkt
        return self

    def parent(self, parent: PlacexTestRow) -> PlacexTestRow:
        self.data["parent_place_id"] = parent.place_id
        return self

    def linked(self, place_id: int) -> PlacexTestRow:
        self.data["linked_place_id"] = place_id
        return self

    def add(self, con: duckdb.DuckDBPyConnection) -> PlacexTestRow:
        data = dict(self.data)
        if self._names:
            data["name"] = self._names
        if self._address:
            data["address"] = self._address
        _insert(con, "placex", data)
        return self

    def add_address(self, con: duckdb.DuckDBPyConnection, ancestor: PlacexTestRow, isaddress: bool = True) -> PlacexTestRow:
        _insert(con, "place_addressline", {
            "place_id": self.place_id,
            "address_place_id": ancestor.place_id,
            "cached_rank_address": ancestor.data["rank_address"],
            "isaddress": isaddress,
        })
        return self

    def mark_updated(self, con: duckdb.DuckDBPyConnection, operation: str = "UPDATE") -> PlacexTestRow:
        add_change(con, "placex", self.place_id, operation)
        return self


class OsmlineTestRow:
    """Builder for rows of the interpolation table (new-style `step` column)."""

    def __init__(self, place_id: int, start: int, end: int, step: int = 1):
        self.place_id = place_id
        self.data: dict[str, Any] = {
            "place_id": place_id,
            "osm_id": place_id + 500000,
            "startnumber": start,
            "endnumber": end,
            "step": step,
            "country_code": "us",
            "linegeo": "LINESTRING(0 0, 0 10)",
            "indexed_status": 0,
        }

    def parent(self, parent: PlacexTestRow) -> OsmlineTestRow:
        self.data["parent_place_id"] = parent.place_id
        return self

    def add(self, con: duckdb.DuckDBPyConnection) -> OsmlineTestRow:
        _insert(con, "location_property_osmline", self.data)
        return self


def add_change(con: duckdb.DuckDBPyConnection, table: str, place_id: int, operation: str = "UPDATE",
               indexed_date: str = "2024-01-01 10:00:00") -> None:
    con.execute(
        "INSERT INTO photon_updates VALUES (?, ?, ?, CAST(? AS TIMESTAMP))",
        [table, place_id, operation, indexed_date],
    )
