from __future__ import annotations

import logging
from datetime import datetime

import pytest

from place_indexer.model.address import AddressType
from place_indexer.nominatim import NominatimConnector, StepMode
from place_indexer.utils.errors import PlaceDataError

from conftest import OsmlineTestRow, PlacexTestRow


@pytest.fixture
def hierarchy(nominatim_db):
    state = PlacexTestRow("boundary", "administrative").name("Illinois").ranks(8).add(nominatim_db)
    city = PlacexTestRow("place", "city").name("Springfield").name("name:de", "Springfeld") \
        .ranks(16).add(nominatim_db)
    city.add_address(nominatim_db, state)
    street = PlacexTestRow("highway", "residential").name("Main Street").ranks(26).add(nominatim_db)
    street.add_address(nominatim_db, city).add_address(nominatim_db, state)
    return {"state": state, "city": city, "street": street}


def _read(connector: NominatimConnector, country_code: str) -> dict[int, list]:
    results = {}
    connector.read_country(country_code, lambda r: results.setdefault(r.doc.place_id, r.docs_with_house_number()))
    return results


def test_read_country_resolves_address(nominatim_db, hierarchy):
    house = PlacexTestRow("building", "yes").addr("housenumber", "5").parent(hierarchy["street"]) \
        .add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en", "de"])

    results = _read(connector, "us")

    assert set(results) == {p.place_id for p in hierarchy.values()} | {house.place_id}

    doc = results[house.place_id][0]
    assert doc.house_number == "5"
    assert doc.address_parts[AddressType.STREET] == {"default": "Main Street"}
    assert doc.address_parts[AddressType.CITY] == {"default": "Springfield", "de": "Springfeld"}
    assert doc.address_parts[AddressType.STATE] == {"default": "Illinois"}
    assert doc.address_parts[AddressType.COUNTRY] == {"default": "United States", "de": "Vereinigte Staaten"}

    city = results[hierarchy["city"].place_id][0]
    assert AddressType.CITY not in city.address_parts
    assert city.address_parts[AddressType.STATE] == {"default": "Illinois"}


@pytest.mark.parametrize("parent_lines_first", [True, False])
def test_parent_ancestor_wins_on_same_rank(nominatim_db, parent_lines_first):
    own_city = PlacexTestRow("place", "city").name("OwnCity").ranks(16).add(nominatim_db)
    parent_city = PlacexTestRow("place", "town").name("ParentCity").ranks(16).add(nominatim_db)
    street = PlacexTestRow("highway", "residential").name("Main Street").ranks(26).add(nominatim_db)
    house = PlacexTestRow("building", "yes").addr("housenumber", "5").parent(street).add(nominatim_db)

    if parent_lines_first:
        street.add_address(nominatim_db, parent_city)
        house.add_address(nominatim_db, own_city)
    else:
        house.add_address(nominatim_db, own_city)
        street.add_address(nominatim_db, parent_city)

    connector = NominatimConnector(nominatim_db, ["en"])
    doc = _read(connector, "us")[house.place_id][0]

    assert doc.address_parts[AddressType.CITY] == {"default": "ParentCity"}


def test_read_country_skips_unusable_places(nominatim_db):
    PlacexTestRow("amenity", "cafe").name("Linked").linked(5).add(nominatim_db)
    PlacexTestRow("amenity", "bench").add(nominatim_db)
    cafe = PlacexTestRow("amenity", "cafe").name("Spot").add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en"])

    assert set(_read(connector, "us")) == {cafe.place_id}


def test_broken_row_is_skipped(nominatim_db, caplog):
    broken = PlacexTestRow("amenity", "cafe").name("Broken")
    broken.data["osm_id"] = None
    broken.add(nominatim_db)
    cafe = PlacexTestRow("amenity", "cafe").name("Spot").add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en"])

    assert set(_read(connector, "us")) == {cafe.place_id}
    assert f"Bad data in 'placex' for place {broken.place_id}" in caplog.text

    with pytest.raises(PlaceDataError):
        connector.get_by_place_id(broken.place_id)


def test_read_country_outside_any_country(nominatim_db):
    sea = PlacexTestRow("natural", "water").name("Atlantic").country(None).add(nominatim_db)
    PlacexTestRow("amenity", "cafe").name("Spot").add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en"])

    results = _read(connector, "")

    assert set(results) == {sea.place_id}
    assert results[sea.place_id][0].country_code is None


def test_read_country_unknown_country(nominatim_db, caplog):
    connector = NominatimConnector(nominatim_db, ["en"])

    with caplog.at_level(logging.WARNING):
        assert connector.read_country("xx", lambda r: None) == 0

    assert "Unknown country code 'xx'" in caplog.text


def test_get_countries(nominatim_db):
    connector = NominatimConnector(nominatim_db, ["en"])

    assert sorted(connector.get_countries()) == ["", "de", "nl", "us"]


def test_new_style_interpolation(nominatim_db, hierarchy):
    OsmlineTestRow(50, 2, 6, step=2).parent(hierarchy["street"]).add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en"])

    assert connector.has_new_style_interpolation

    docs = connector.get_interpolations_by_place_id(50)

    assert [d.house_number for d in docs] == ["2", "4", "6"]
    assert [d.uid(i) for i, d in enumerate(docs)] == ["50", "50.1", "50.2"]
    assert docs[0].address_parts[AddressType.STREET] == {"default": "Main Street"}
    assert docs[0].address_parts[AddressType.CITY] == {"default": "Springfield"}
    assert (docs[0].class_key, docs[0].class_value) == ("place", "house_number")


def test_legacy_interpolation(legacy_nominatim_db):
    legacy_nominatim_db.execute(
        """
        INSERT INTO location_property_osmline (place_id, osm_id, startnumber, endnumber, interpolationtype,
                                               country_code, linegeo, indexed_status)
        VALUES (60, 6000, 1, 7, 'odd', 'us', 'LINESTRING(0 0, 0 6)', 0)
        """
    )
    connector = NominatimConnector(legacy_nominatim_db, ["en"])

    assert not connector.has_new_style_interpolation

    row = connector.interpolation_row({"place_id": 60, "osm_id": 6000, "startnumber": 1, "endnumber": 7,
                                       "interpolationtype": "odd"})
    assert row.step_mode == StepMode.ODD

    docs = connector.get_interpolations_by_place_id(60)

    assert [d.house_number for d in docs] == ["3", "5"]


def test_get_by_place_id(nominatim_db, hierarchy):
    pending = PlacexTestRow("amenity", "cafe").name("Later").add(nominatim_db)
    nominatim_db.execute("UPDATE placex SET indexed_status = 2 WHERE place_id = ?", [pending.place_id])
    connector = NominatimConnector(nominatim_db, ["en"])

    docs = connector.get_by_place_id(hierarchy["street"].place_id)

    assert len(docs) == 1
    assert docs[0].address_parts[AddressType.CITY] == {"default": "Springfield"}
    assert connector.get_by_place_id(pending.place_id) is None
    assert connector.get_by_place_id(999999) is None


def test_broken_house_number_degrades(nominatim_db):
    place = PlacexTestRow("building", "yes").name("Villa").addr("housenumber", "no number here") \
        .add(nominatim_db)
    connector = NominatimConnector(nominatim_db, ["en"])

    docs = connector.get_by_place_id(place.place_id)

    assert [d.house_number for d in docs] == [None]


def test_last_import_date(nominatim_db):
    connector = NominatimConnector(nominatim_db, ["en"])
    assert connector.get_last_import_date() is None

    nominatim_db.execute("INSERT INTO import_status VALUES ('2024-02-03 04:05:06')")

    assert connector.get_last_import_date() == datetime(2024, 2, 3, 4, 5, 6)


def test_prepare_database_creates_country_index(nominatim_db):
    connector = NominatimConnector(nominatim_db, ["en"])
    connector.prepare_database()
    connector.prepare_database()

    count = nominatim_db.execute(
        "SELECT COUNT(*) FROM duckdb_indexes() WHERE table_name = 'placex'"
    ).fetchone()[0]
    assert count == 1
