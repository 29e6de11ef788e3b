"""
Entitlements package.

- models: catalog, office and grant records.
- resolver: the live feature set for an office and the checks built on it.
- activation: free and token-gated feature group activation.
- expiration: the periodic sweep of expired grants.
- handlers: the start-up mapping from feature names to handlers.
"""

from .models import (
    Office,
    Feature,
    FeatureGroup,
    TokenConfiguration,
    Grant,
    FeatureCatalog,
    FeatureGroupStatus,
    utc_now,
)
from .resolver import EntitlementResolver

__all__ = [
    "Office",
    "Feature",
    "FeatureGroup",
    "TokenConfiguration",
    "Grant",
    "FeatureCatalog",
    "FeatureGroupStatus",
    "utc_now",
    "EntitlementResolver",
]
