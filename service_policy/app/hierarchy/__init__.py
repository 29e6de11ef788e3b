"""
Role hierarchy package.

- roles: the Role enum, its total order and the hierarchical admin roles.
- assignment: the fixed table of which roles an actor may assign.
"""

from .roles import (
    Role,
    HIERARCHICAL_ADMIN_ROLES,
    rank,
    has_equal_or_higher_rank,
    is_hierarchical_admin,
    parse_role,
)
from .assignment import can_assign, assignable_roles, visible_admin_roles

__all__ = [
    "Role",
    "HIERARCHICAL_ADMIN_ROLES",
    "rank",
    "has_equal_or_higher_rank",
    "is_hierarchical_admin",
    "parse_role",
    "can_assign",
    "assignable_roles",
    "visible_admin_roles",
]
