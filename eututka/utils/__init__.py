"""Utility functions for the data layer."""
from .geographies import COUNTRY_NAMES, canonicalize_country_code, country_name

__all__ = [
    'COUNTRY_NAMES',
    'canonicalize_country_code',
    'country_name',
]
