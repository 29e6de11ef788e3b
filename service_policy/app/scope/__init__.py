"""
Administrative scope package.

A hierarchical admin's jurisdiction is a country, state or city. Scopes
are stored on the principal record as JSON; parsing is strict and a
malformed scope is an InvalidConfigurationError, never an empty or
universal scope.
"""

from .models import ScopeLevel, Scope, Location, parse_scope, serialize_scope, level_for_role
from .containment import contains, covers_location

__all__ = [
    "ScopeLevel",
    "Scope",
    "Location",
    "parse_scope",
    "serialize_scope",
    "level_for_role",
    "contains",
    "covers_location",
]
