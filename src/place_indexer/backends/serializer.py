"""
Conversion of PlaceRecord into the backend neutral JSON document.

The same document shape is used by the dump file and the DuckDB backend.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ..model.names import ContextMap
from ..model.place import PlaceRecord

OSM_ID = "osm_id"
OSM_TYPE = "osm_type"
OSM_KEY = "osm_key"
OSM_VALUE = "osm_value"
OBJECT_TYPE = "type"
IMPORTANCE = "importance"
CLASSIFICATION = "classification"
COORDINATE = "coordinate"
HOUSENUMBER = "housenumber"
POSTCODE = "postcode"
NAME = "name"
COUNTRYCODE = "countrycode"
CONTEXT = "context"
EXTRA = "extra"
EXTENT = "extent"


def build_classification_string(key: Optional[str], value: Optional[str]) -> Optional[str]:
    """
    Searchable token for the classification of a place, e.g. `tpfld_amenity_cafe`.

    Returns None for generic values which cannot be searched for.
    """
    if not key or not value or value in ("yes", "unclassified"):
        return None
    if key == "place" and value in ("house", "houses"):
        return None

    def _clean(s: str) -> str:
        return "".join(c for c in s if c.isalnum() or c == "_")

    key, value = _clean(key), _clean(value)
    if not key or not value:
        return None
    return f"tpfld_{key}_{value}"


def _context_fields(context: ContextMap) -> dict[str, str]:
    return {tag: ", ".join(sorted(names)) for tag, names in context.items() if names}


def serialize_document(doc: PlaceRecord, extra_tags: Iterable[str] = ()) -> dict[str, Any]:
    """Build the JSON document for `doc`. Only the listed extra tags are kept."""
    atype = doc.address_type

    out: dict[str, Any] = {
        OSM_ID: doc.osm_id,
        OSM_TYPE: doc.osm_type,
        OSM_KEY: doc.class_key,
        OSM_VALUE: doc.class_value,
        OBJECT_TYPE: "locality" if atype is None else atype.value,
        IMPORTANCE: doc.importance,
    }

    classification = build_classification_string(doc.class_key, doc.class_value)
    if classification is not None:
        out[CLASSIFICATION] = classification

    if doc.centroid is not None:
        out[COORDINATE] = {"lat": doc.centroid.y, "lon": doc.centroid.x}

    if doc.house_number is not None:
        out[HOUSENUMBER] = doc.house_number

    if doc.postcode is not None:
        out[POSTCODE] = doc.postcode

    out[NAME] = doc.name.to_dict()

    for part, names in doc.address_parts.items():
        out[part.value] = dict(names)

    if doc.country_code is not None:
        out[COUNTRYCODE] = doc.country_code

    if doc.context:
        out[CONTEXT] = _context_fields(doc.context)

    extra = {tag: doc.extra_tags[tag] for tag in extra_tags if tag in doc.extra_tags}
    if extra:
        out[EXTRA] = extra

    if doc.bbox is not None:
        minx, miny, maxx, maxy = doc.bbox
        if minx < maxx and miny < maxy:
            out[EXTENT] = {
                "type": "envelope",
                "coordinates": [[minx, maxy], [maxx, miny]],
            }

    return out
