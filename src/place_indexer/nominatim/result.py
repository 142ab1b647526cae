"""
Expansion of one resolved place into one document per house number.

A place row may carry a list of house numbers, an interpolation line carries
a numeric range. Both end up as copies of the same base document that only
differ in house number and position.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
import logging
import re
from typing import Mapping, Optional, Union

from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from ..model.place import PlaceRecord

logger = logging.getLogger(__name__)

# Interpolations spanning more house numbers are considered broken data.
MAX_INTERPOLATION_RANGE = 1000
MAX_HOUSENUMBER_STRING = 50

# A comma-separated part of at least three characters without any digit.
_NO_NUMBER_PART = re.compile(r"(\A|.*,)[^\d,]{3,}(,.*|\Z)")
_HOUSENUMBER_SPLIT = re.compile(r"[;,]")

ADDRESS_HOUSENUMBER_KEYS = ("housenumber", "streetnumber", "conscriptionnumber")


class StepMode(StrEnum):
    """Which house numbers an interpolation line stands for."""
    ODD = "odd"
    EVEN = "even"
    ALL = "all"
    NONE = ""

    @classmethod
    def from_legacy(cls, value: Optional[str]) -> "StepMode":
        """Map the legacy `interpolationtype` column. Unknown values count as NONE."""
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.debug(f"Unknown interpolation type '{value}', interpolating all numbers")
            return cls.NONE

    @classmethod
    def from_step(cls, step: Optional[int], start: int) -> "StepMode":
        """Map a numeric step, the parity of `start` decides between odd and even."""
        if step == 2:
            return cls.ODD if start % 2 == 1 else cls.EVEN
        return cls.ALL

    @property
    def stride(self) -> int:
        return 2 if self in (StepMode.ODD, StepMode.EVEN) else 1


@dataclass(frozen=True)
class InterpolationRow:
    """
    One address interpolation line. `start_number` and `end_number` are the
    house numbers at the two ends of the line, only the numbers strictly
    between them are generated.
    """
    place_id: int
    osm_id: int
    parent_place_id: int
    start_number: int
    end_number: int
    step_mode: StepMode
    geometry: Optional[BaseGeometry]
    country_code: Optional[str] = None
    postcode: Optional[str] = None

    @classmethod
    def from_legacy(cls, start: int, end: int, interpolation_type: Optional[str], **kwargs) -> "InterpolationRow":
        return cls(start_number=start, end_number=end,
                   step_mode=StepMode.from_legacy(interpolation_type), **kwargs)

    @classmethod
    def from_step(cls, start: int, end: int, step: Optional[int], **kwargs) -> "InterpolationRow":
        """
        New-style rows list the first and last generated number inclusively.
        Widen them by one step so that they describe the line ends.
        """
        mode = StepMode.from_step(step, start)
        return cls(start_number=start - mode.stride, end_number=end + mode.stride,
                   step_mode=mode, **kwargs)


def _sort_key(housenumber: str) -> tuple[int, int, str]:
    digits = re.match(r"\d+", housenumber)
    if digits:
        return (0, int(digits.group()), housenumber)
    return (1, 0, housenumber)


class PlaceResult:
    """A resolved base document plus the house numbers to generate from it."""

    def __init__(self, doc: PlaceRecord):
        self.doc = doc
        self.housenumbers: dict[str, Optional[Point]] = {}

    def is_useful_for_index(self) -> bool:
        return bool(self.housenumbers) or self.doc.is_useful_for_index()

    def docs_with_house_number(self) -> list[PlaceRecord]:
        """
        One document per house number, ordered by number, so that object ids
        stay stable over repeated runs. Without house numbers the base document
        is returned as is.
        """
        if not self.housenumbers:
            return [self.doc]

        return [
            self.doc.model_copy(update={"house_number": number, "centroid": point})
            for number, point in sorted(self.housenumbers.items(), key=lambda item: _sort_key(item[0]))
        ]

    def add_house_numbers_from_string(self, value: Optional[str]) -> None:
        if not value:
            return

        if len(value) > MAX_HOUSENUMBER_STRING or _NO_NUMBER_PART.search(value):
            logger.debug(f"Ignoring house number string '{value:.60}' of place {self.doc.place_id}")
            return

        for part in _HOUSENUMBER_SPLIT.split(value):
            number = part.strip()
            if number:
                self.housenumbers[number] = self.doc.centroid

    def add_house_numbers_from_interpolation(
        self,
        start: int,
        end: int,
        step_mode: Union[StepMode, str, None],
        geometry: Optional[BaseGeometry],
    ) -> None:
        """Generate the house numbers strictly between `start` and `end`."""
        if end <= start or end - start > MAX_INTERPOLATION_RANGE:
            logger.debug(f"Ignoring implausible interpolation {start}-{end} of place {self.doc.place_id}")
            return
        if not isinstance(geometry, LineString) or geometry.is_empty:
            logger.debug(f"Ignoring interpolation without line geometry for place {self.doc.place_id}")
            return

        mode = step_mode if isinstance(step_mode, StepMode) else StepMode.from_legacy(step_mode)

        if mode == StepMode.ODD:
            first = start + 1 if start % 2 == 0 else start + 2
        elif mode == StepMode.EVEN:
            first = start + 1 if start % 2 == 1 else start + 2
        else:
            first = start + 1

        span = end - start
        for number in range(first, end, mode.stride):
            fraction = (number - start) / span
            self.housenumbers[str(number)] = geometry.interpolate(fraction, normalized=True)

    @classmethod
    def from_address(cls, doc: PlaceRecord, address: Optional[Mapping[str, str]]) -> "PlaceResult":
        result = cls(doc)
        if address:
            for key in ADDRESS_HOUSENUMBER_KEYS:
                if address.get(key):
                    result.add_house_numbers_from_string(address[key])
                    break
        return result

    @classmethod
    def from_interpolation(cls, doc: PlaceRecord, row: InterpolationRow) -> "PlaceResult":
        result = cls(doc)
        result.add_house_numbers_from_interpolation(
            row.start_number, row.end_number, row.step_mode, row.geometry)
        return result
