"""Builds flat, multi-lingual geocoding documents from a Nominatim-style database
and keeps them synchronized with its change-capture table."""

__version__ = "0.1.0"
