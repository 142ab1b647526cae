"""
Address hierarchy building blocks: address types, ancestor rows and the
rank-indexed row container used during address resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, Iterator, Mapping, Optional

from .names import ContextMap, NameMap

MAX_RANK = 30


class AddressType(StrEnum):
    """Coarse address category of a place, derived from its address rank."""
    HOUSE = "house"
    STREET = "street"
    LOCALITY = "locality"
    DISTRICT = "district"
    CITY = "city"
    COUNTY = "county"
    STATE = "state"
    COUNTRY = "country"

    @property
    def rank_range(self) -> tuple[int, int]:
        return _RANK_RANGES[self]

    @classmethod
    def from_rank(cls, rank: int) -> Optional["AddressType"]:
        for atype, (low, high) in _RANK_RANGES.items():
            if low <= rank <= high:
                return atype
        return None


_RANK_RANGES: dict[AddressType, tuple[int, int]] = {
    AddressType.HOUSE: (29, 30),
    AddressType.STREET: (26, 28),
    AddressType.LOCALITY: (22, 25),
    AddressType.DISTRICT: (17, 21),
    AddressType.CITY: (13, 16),
    AddressType.COUNTY: (10, 12),
    AddressType.STATE: (5, 9),
    AddressType.COUNTRY: (1, 4),
}


@dataclass(frozen=True)
class AddressRow:
    """One ancestor place contributing to the address of another place."""
    name: NameMap
    class_key: str
    class_value: str
    rank_address: int
    context: ContextMap = field(default_factory=ContextMap)

    @property
    def address_type(self) -> Optional[AddressType]:
        return AddressType.from_rank(self.rank_address)

    def is_postcode(self) -> bool:
        if self.class_key == "place" and self.class_value == "postcode":
            return True
        return self.class_key == "boundary" and self.class_value == "postal_code"

    def is_useful_for_context(self) -> bool:
        return len(self.name) > 0 and not self.is_postcode()

    @classmethod
    def make_row(
        cls,
        names: Mapping[str, str],
        class_key: str,
        class_value: str,
        rank_address: int,
        languages: Iterable[str],
    ) -> "AddressRow":
        context = ContextMap()
        # Makes state abbreviations (e.g. US-NY) searchable.
        context.add_name("default", names.get("ISO3166-2"))

        return cls(
            name=NameMap.make_address_names(names, languages),
            class_key=class_key,
            class_value=class_value,
            rank_address=rank_address,
            context=context,
        )


class AddressRowList:
    """
    Address rows of one place, one slot per address rank plus a separate
    slot for the postcode.

    Ranks are expected to be unique within one hierarchy. When two rows share
    a rank, the last one set wins.
    """

    def __init__(self, rows: Optional[Iterable[AddressRow]] = None):
        self._items: list[Optional[AddressRow]] = [None] * (MAX_RANK + 1)
        self._postcode: Optional[AddressRow] = None
        for row in rows or ():
            self.set(row)

    @staticmethod
    def _check_rank(rank: int) -> None:
        if rank < 0 or rank > MAX_RANK:
            raise IndexError(f"address rank {rank} out of range 0..{MAX_RANK}")

    def get(self, rank: int) -> Optional[AddressRow]:
        self._check_rank(rank)
        return self._items[rank]

    @property
    def postcode(self) -> Optional[AddressRow]:
        return self._postcode

    def set(self, row: AddressRow) -> None:
        if row.is_postcode():
            self._postcode = row
        else:
            self._check_rank(row.rank_address)
            self._items[row.rank_address] = row

    def remove_rank(self, rank: int) -> None:
        self._check_rank(rank)
        self._items[rank] = None

    def reverse_iter_ranks(self, min_rank: int = 0, max_rank: int = MAX_RANK) -> Iterator[AddressRow]:
        """Yield the filled slots from `max_rank` down to `min_rank`, closest ancestor first."""
        for rank in range(min(max_rank, MAX_RANK), max(min_rank, 0) - 1, -1):
            row = self._items[rank]
            if row is not None:
                yield row

    def __len__(self) -> int:
        return sum(1 for row in self._items if row is not None)

    def __repr__(self) -> str:
        ranks = [row.rank_address for row in self.reverse_iter_ranks()]
        return f"AddressRowList(ranks={ranks}, postcode={self._postcode is not None})"
