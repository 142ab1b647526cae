"""Document model: names, address hierarchy and the place record."""

from .names import NameMap, ContextMap
from .address import AddressType, AddressRow, AddressRowList
from .place import PlaceRecord

__all__ = [
    'NameMap',
    'ContextMap',
    'AddressType',
    'AddressRow',
    'AddressRowList',
    'PlaceRecord',
]
