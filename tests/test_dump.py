from __future__ import annotations

import io
import json

import duckdb
import pytest

from place_indexer.backends import DuckDBIndexBackend, JsonDumper, JsonDumpReader
from place_indexer.backends.dump import FORMAT_VERSION, HEADER_ID, filter_document
from place_indexer.nominatim import NominatimConnector, import_from_source
from place_indexer.utils.errors import DumpFormatError

from conftest import PlacexTestRow


@pytest.fixture
def index():
    con = duckdb.connect()
    backend = DuckDBIndexBackend(con=con, extra_tags=[])
    yield backend
    con.close()


def _dump(nominatim_db, extra_tags=("wikidata",)) -> io.StringIO:
    out = io.StringIO()
    connector = NominatimConnector(nominatim_db, ["en", "de"])
    import_from_source(connector, JsonDumper(stream=out, extra_tags=list(extra_tags)))
    out.seek(0)
    return out


def _restore(dump: io.StringIO, index, **filters) -> int:
    reader = JsonDumpReader(dump, index)
    reader.read_header()
    return reader.read_data(**filters)


def test_dump_import_simple_place(nominatim_db, index):
    PlacexTestRow("amenity", "cafe").id(1234).osm("N", 5000) \
        .name("Spot").name("name:en", "EnSpot").name("name:es", "EsSpot") \
        .centroid(45.0, 56.0).addr("city", "Blue").importance(0.3).ranks(26).postcode("AB-45") \
        .add(nominatim_db)

    assert _restore(_dump(nominatim_db), index, country_codes=[], languages=["en", "de"]) == 1

    document = index.get("1234")
    assert document["osm_type"] == "N"
    assert document["osm_id"] == 5000
    assert document["name"] == {"default": "Spot", "en": "EnSpot"}
    assert document["coordinate"] == {"lat": 56.0, "lon": 45.0}
    assert document["city"] == {"default": "Blue"}
    assert document["importance"] == 0.3
    assert document["postcode"] == "AB-45"


def test_dump_header(nominatim_db):
    header = json.loads(_dump(nominatim_db).readline())

    assert header["id"] == HEADER_ID
    assert header["version"] == FORMAT_VERSION
    assert "importDate" in header


def test_dump_import_restrict_country(nominatim_db, index):
    PlacexTestRow("amenity", "cafe").id(1000).name("Berlin").country("de").add(nominatim_db)
    PlacexTestRow("amenity", "cafe").id(2000).name("Amsterdam").country("nl").add(nominatim_db)
    PlacexTestRow("amenity", "cafe").id(3000).name("Chicago").country("us").add(nominatim_db)

    assert _restore(_dump(nominatim_db), index, country_codes=["hu", "nl", "US"]) == 2

    assert index.get("1000") is None
    assert index.get("2000") is not None
    assert index.get("3000") is not None


def test_dump_import_filters_languages_and_extra_tags(nominatim_db, index):
    PlacexTestRow("amenity", "cafe").id(1234).name("Spot").name("name:en", "EnSpot").name("name:de", "DeSpot") \
        .name("alt_name", "Spotty").extra_tags({"wikidata": "Q1"}).add(nominatim_db)

    _restore(_dump(nominatim_db), index, languages=["de"], extra_tags=[])

    document = index.get("1234")
    assert document["name"] == {"default": "Spot", "de": "DeSpot", "alt": "Spotty"}
    assert document["country"] == {"default": "United States", "de": "Vereinigte Staaten"}
    assert "extra" not in document


def test_dump_keeps_house_number_documents(nominatim_db, index):
    PlacexTestRow("building", "yes").id(4432).addr("housenumber", "34;35").add(nominatim_db)

    assert _restore(_dump(nominatim_db), index) == 2

    assert index.get("4432")["housenumber"] == "34"
    assert index.get("4432.1")["housenumber"] == "35"


@pytest.mark.parametrize("header,field", [
    ({"id": "Something else", "version": FORMAT_VERSION}, "id"),
    ({"id": HEADER_ID, "version": "0.0.1"}, "version"),
    ({"id": HEADER_ID}, "version"),
])
def test_read_header_rejects_foreign_files(index, header, field):
    reader = JsonDumpReader(io.StringIO(json.dumps(header) + "\n"), index)

    with pytest.raises(DumpFormatError) as excinfo:
        reader.read_header()

    assert excinfo.value.field == field


def test_read_header_rejects_empty_file(index):
    with pytest.raises(DumpFormatError):
        JsonDumpReader(io.StringIO(""), index).read_header()


def test_read_header_import_date(index):
    header = {"id": HEADER_ID, "version": FORMAT_VERSION, "importDate": "2024-03-01T12:30:00"}
    reader = JsonDumpReader(io.StringIO(json.dumps(header) + "\n"), index)

    date = reader.read_header()

    assert (date.year, date.month, date.day, date.hour, date.minute) == (2024, 3, 1, 12, 30)


def test_filter_document_keeps_unfiltered_parts():
    document = {"name": {"default": "A", "fr": "B"}, "extra": {"a": "1"}, "osm_id": 5}

    assert filter_document(document) == document
    assert filter_document(document, languages=["en"]) == {"name": {"default": "A"}, "extra": {"a": "1"}, "osm_id": 5}
