"""
The denormalized place document and the address resolution that fills it.

A PlaceRecord is created from one source row, completed with the names of
its ancestors (address parts and context terms) and then handed to an index
backend. It must not be changed after that.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from .address import AddressRow, AddressRowList, AddressType
from .names import ContextMap, NameMap

logger = logging.getLogger(__name__)

# Raw address keys that may replace a computed address part.
ADDRESS_TERM_FIELDS: tuple[tuple[AddressType, str], ...] = (
    (AddressType.STREET, "street"),
    (AddressType.CITY, "city"),
    (AddressType.DISTRICT, "suburb"),
    (AddressType.LOCALITY, "neighbourhood"),
    (AddressType.COUNTY, "county"),
    (AddressType.STATE, "state"),
)

# (address type, raw address keys, min rank, max rank) for matching raw
# address terms against ancestor rows. The rank windows overlap,
# the first type to claim a row gets it.
ADDRESS_TERM_WINDOWS: tuple[tuple[AddressType, tuple[str, ...], int, int], ...] = (
    (AddressType.STREET, ("street",), 26, 28),
    (AddressType.LOCALITY, ("place", "neighbourhood"), 17, 25),
    (AddressType.DISTRICT, ("suburb",), 17, 24),
    (AddressType.CITY, ("city",), 13, 21),
    (AddressType.COUNTY, ("county", "district", "subdistrict"), 10, 16),
    (AddressType.STATE, ("state", "province"), 5, 9),
)

BBox = tuple[float, float, float, float]


class PlaceRecord(BaseModel):
    """Denormalized, backend independent document for one place."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    place_id: int
    osm_type: str
    osm_id: int
    class_key: str
    class_value: str

    name: NameMap = Field(default_factory=NameMap)
    house_number: Optional[str] = None
    postcode: Optional[str] = None
    extra_tags: dict[str, str] = Field(default_factory=dict)
    bbox: Optional[BBox] = None
    centroid: Optional[Point] = None
    parent_place_id: int = 0
    linked_place_id: int = 0
    rank_address: int = 30
    importance: float = 0.0
    country_code: Optional[str] = None

    address_parts: dict[AddressType, NameMap] = Field(default_factory=dict)
    context: ContextMap = Field(default_factory=ContextMap)

    # --- Validators ------------------------------------------------------------
    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, v: Any) -> NameMap:
        if v is None:
            return NameMap()
        if isinstance(v, NameMap):
            return v
        return NameMap(v)

    @field_validator("context", mode="before")
    @classmethod
    def _validate_context(cls, v: Any) -> ContextMap:
        if isinstance(v, ContextMap):
            return v
        ctx = ContextMap()
        if v:
            ctx.add_from_context(v)
        return ctx

    @field_validator("address_parts", mode="before")
    @classmethod
    def _validate_address_parts(cls, v: Any) -> dict:
        if not v:
            return {}
        return {AddressType(k): n if isinstance(n, NameMap) else NameMap(n) for k, n in v.items()}

    @field_validator("house_number", mode="before")
    @classmethod
    def _validate_house_number(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("country_code", mode="before")
    @classmethod
    def _validate_country_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else None

    @field_validator("bbox", mode="before")
    @classmethod
    def _validate_bbox(cls, v: Any) -> Optional[BBox]:
        if isinstance(v, BaseGeometry):
            return None if v.is_empty else tuple(v.bounds)
        return v

    @field_validator("centroid", mode="before")
    @classmethod
    def _validate_centroid(cls, v: Any) -> Optional[Point]:
        if v is None or isinstance(v, Point):
            return v
        if isinstance(v, BaseGeometry):
            return None if v.is_empty else v.centroid
        lon, lat = v
        return Point(float(lon), float(lat))

    @field_validator("parent_place_id", "linked_place_id", mode="before")
    @classmethod
    def _validate_place_ref(cls, v: Optional[int]) -> int:
        return int(v) if v else 0

    @model_validator(mode="after")
    def _apply_extra_tags(self) -> "PlaceRecord":
        self._take_place_class(self.extra_tags)
        return self

    # --- Basic accessors -------------------------------------------------------
    def set_extra_tags(self, extra_tags: Optional[Mapping[str, str]]) -> None:
        if extra_tags is not None:
            self.extra_tags = dict(extra_tags)
            self._take_place_class(self.extra_tags)

    def _take_place_class(self, extra_tags: Mapping[str, str]) -> None:
        # A more specific place type in the extra tags overrides the classification.
        place = extra_tags.get("place") or extra_tags.get("linked_place")
        if place:
            self.class_key = "place"
            self.class_value = place

    @property
    def address_type(self) -> Optional[AddressType]:
        return AddressType.from_rank(self.rank_address)

    @staticmethod
    def make_uid(place_id: int, object_id: int) -> str:
        if object_id <= 0:
            return str(place_id)
        return f"{place_id}.{object_id}"

    def uid(self, object_id: int = 0) -> str:
        return self.make_uid(self.place_id, object_id)

    def is_useful_for_index(self) -> bool:
        if self.class_key == "place" and self.class_value == "houses":
            return False
        if self.linked_place_id > 0:
            return False
        return self.house_number is not None or len(self.name) > 0

    # --- Address resolution ----------------------------------------------------
    def set_country(self, names: Optional[Mapping[str, str]]) -> None:
        if names is None:
            return
        self.address_parts[AddressType.COUNTRY] = names if isinstance(names, NameMap) else NameMap(names)

    def _set_address_part_if_new(self, atype: AddressType, names: NameMap) -> bool:
        """Claim the slot for `atype` unless a closer ancestor already did."""
        if atype in self.address_parts:
            return False
        self.address_parts[atype] = names
        return True

    def complete_place(self, addresses: Union[AddressRowList, Iterable[AddressRow]]) -> "PlaceRecord":
        """
        Fill address parts and context from the ancestor rows.

        Rows must come closest ancestor first. The first row of each address
        type claims the address part, all later ones only end up in the context.
        """
        rows = addresses.reverse_iter_ranks() if isinstance(addresses, AddressRowList) else addresses
        doctype = self.address_type

        for row in rows:
            atype = row.address_type
            if (atype is not None
                    and (atype == doctype or not self._set_address_part_if_new(atype, row.name))
                    and row.is_useful_for_context()):
                self.context.add_from_map(row.name)
            self.context.add_from_context(row.context)

        return self

    def address(self, terms: Optional[Mapping[str, str]]) -> "PlaceRecord":
        """Overlay raw address terms over the computed address parts."""
        if not terms:
            return self

        for atype, key in ADDRESS_TERM_FIELDS:
            self._extract_address(terms, atype, key)

        postcode = terms.get("postcode")
        if postcode is not None and postcode != self.postcode:
            logger.debug(f"Replacing postcode {self.postcode} with {postcode} for osm {self.osm_type}{self.osm_id}")
            self.postcode = postcode

        return self

    def _extract_address(self, terms: Mapping[str, str], atype: AddressType, key: str) -> None:
        value = terms.get(key)
        if value is None:
            return

        names = self.address_parts.get(atype)
        if names is None:
            self.address_parts[atype] = NameMap.make_simple_name(value)
            return

        existing = names.get("default")
        if value != existing:
            logger.debug(
                f"Replacing {atype} name '{existing}' with '{value}' for osm {self.osm_type}{self.osm_id}"
            )
            self.address_parts[atype] = names.copy_with_replacement("default", value)
            # Keep the old name searchable.
            self.context.add_name("default", existing)

    def set_from_address_terms(
        self,
        atype: AddressType,
        term_keys: Iterable[str],
        min_rank: int,
        max_rank: int,
        addresses: Optional[AddressRowList],
        terms: Mapping[str, str],
    ) -> None:
        """
        Claim the address part `atype` from the first available raw term.

        An ancestor in the rank window with a matching name is preferred, so that
        all its translations end up in the document. Such a row is removed from
        `addresses` and cannot be used for any other part.
        """
        for key in term_keys:
            term = terms.get(key)
            if term is None:
                continue
            if addresses is not None:
                for row in addresses.reverse_iter_ranks(min_rank, max_rank):
                    if row.name.matches(term):
                        self.address_parts[atype] = row.name
                        self.context.add_from_context(row.context)
                        addresses.remove_rank(row.rank_address)
                        return
            self.address_parts[atype] = NameMap.make_simple_name(term)
            return

    def complete_address(
        self,
        addresses: Optional[AddressRowList],
        terms: Optional[Mapping[str, str]] = None,
    ) -> "PlaceRecord":
        """
        Full address resolution: raw terms matched against the hierarchy,
        the hierarchy walk for everything not claimed, the postcode and finally
        the raw terms again so that they take precedence.
        """
        if terms:
            for atype, keys, min_rank, max_rank in ADDRESS_TERM_WINDOWS:
                self.set_from_address_terms(atype, keys, min_rank, max_rank, addresses, terms)

        if addresses is not None:
            self.complete_place(addresses)

        if terms and terms.get("postcode") is not None:
            self.postcode = terms["postcode"]
        elif addresses is not None and addresses.postcode is not None:
            postcode = addresses.postcode.name.get("default")
            if postcode is not None:
                self.postcode = postcode

        return self.address(terms)
