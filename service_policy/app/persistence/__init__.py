"""
Storage for principals, offices, geography, catalog and grants.
"""

from .memory import (
    InMemoryPrincipalStore,
    InMemoryOfficeDirectory,
    InMemoryGeographyDirectory,
    InMemoryCatalogStore,
    InMemoryGrantStore,
)

__all__ = [
    "InMemoryPrincipalStore",
    "InMemoryOfficeDirectory",
    "InMemoryGeographyDirectory",
    "InMemoryCatalogStore",
    "InMemoryGrantStore",
]
