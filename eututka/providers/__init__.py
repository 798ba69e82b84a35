"""Source adapters. Each returns a FetchResult for one dataset code."""
from .base import BaseProvider
from .eurostat import EurostatProvider
from .oecd import OECDProvider
from .sparql import SparqlProvider

__all__ = [
    'BaseProvider',
    'EurostatProvider',
    'OECDProvider',
    'SparqlProvider',
]
