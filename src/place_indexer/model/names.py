"""
Multi-lingual name containers.

NameMap holds the names of one place keyed by a language code or one of
the fixed name kinds. ContextMap collects secondary search terms per
language.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Optional

# Name kinds that are not language codes, with the source keys they are taken from.
PLACE_NAME_KINDS: dict[str, tuple[str, ...]] = {
    "alt": ("_place_alt_name", "alt_name"),
    "int": ("_place_int_name", "int_name"),
    "loc": ("_place_loc_name", "loc_name"),
    "old": ("_place_old_name", "old_name"),
    "reg": ("_place_reg_name", "reg_name"),
    "housename": ("addr:housename",),
}

DEFAULT_NAME_KEYS: tuple[str, ...] = ("_place_name", "name")


class NameMap(Mapping[str, str]):
    """
    Immutable tag → name mapping.

    Compares equal to any mapping with the same items, so tests can
    simply compare against a dict.
    """

    __slots__ = ("_names",)

    def __init__(self, names: Optional[Mapping[str, str]] = None):
        self._names: dict[str, str] = dict(names) if names else {}

    def __getitem__(self, key: str) -> str:
        return self._names[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"NameMap({self._names!r})"

    def __hash__(self) -> int:
        return hash(frozenset(self._names.items()))

    def copy_with_replacement(self, tag: str, value: str) -> NameMap:
        """Return a new map where `tag` is set to `value`. The receiver is unchanged."""
        names = dict(self._names)
        names[tag] = value
        return NameMap(names)

    def matches(self, text: str) -> bool:
        """Check if any of the names equals `text`, ignoring case."""
        folded = text.casefold()
        return any(v.casefold() == folded for v in self._names.values())

    def to_dict(self) -> dict[str, str]:
        return dict(self._names)

    @staticmethod
    def _pick(names: dict[str, str], tag: str, source: Mapping[str, str], keys: Iterable[str]) -> None:
        if tag in names:
            return
        for key in keys:
            if key in source:
                names[tag] = source[key]
                return

    @classmethod
    def _locale_names(cls, source: Mapping[str, str], languages: Iterable[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        cls._pick(names, "default", source, DEFAULT_NAME_KEYS)
        for lang in languages:
            cls._pick(names, lang, source, (f"_place_name:{lang}", f"name:{lang}"))
        return names

    @classmethod
    def make_address_names(cls, source: Mapping[str, str], languages: Iterable[str]) -> NameMap:
        """Names for an address part: default name and the configured languages."""
        return cls(cls._locale_names(source, languages))

    @classmethod
    def make_place_names(cls, source: Mapping[str, str], languages: Iterable[str]) -> NameMap:
        """Names for a primary place: like address names plus the alternative name kinds."""
        names = cls._locale_names(source, languages)
        for tag, keys in PLACE_NAME_KINDS.items():
            cls._pick(names, tag, source, keys)
        return cls(names)

    @classmethod
    def make_simple_name(cls, name: str) -> NameMap:
        return cls({"default": name})


class ContextMap(dict[str, set[str]]):
    """Append-only collection of secondary names, grouped by language tag."""

    def add_name(self, tag: str, name: Optional[str]) -> None:
        if name is not None:
            self.setdefault(tag, set()).add(name)

    def add_from_map(self, names: Mapping[str, str]) -> None:
        for tag, name in names.items():
            self.add_name(tag, name)

    def add_from_context(self, other: Mapping[str, Iterable[str]]) -> None:
        for tag, names in other.items():
            self.setdefault(tag, set()).update(names)
