"""
Which roles an actor may hand out.

The table is fixed rather than derived from rank distance. An actor may
only assign hierarchical admin roles strictly below its own, and ADMIN
never assigns ADMIN, MANAGER or USER.
"""

from typing import Dict, FrozenSet

from shared.errors import ForbiddenError
from .roles import Role

_ASSIGNABLE: Dict[Role, FrozenSet[Role]] = {
    Role.ADMIN: frozenset({Role.CITY_ADMIN, Role.STATE_ADMIN, Role.COUNTRY_ADMIN}),
    Role.COUNTRY_ADMIN: frozenset({Role.CITY_ADMIN, Role.STATE_ADMIN}),
    Role.STATE_ADMIN: frozenset({Role.CITY_ADMIN}),
}


def assignable_roles(actor_role: Role) -> FrozenSet[Role]:
    """Roles ``actor_role`` may assign; empty for non-admins."""
    return _ASSIGNABLE.get(actor_role, frozenset())


def can_assign(actor_role: Role, target_role: Role) -> bool:
    return target_role in assignable_roles(actor_role)


def visible_admin_roles(actor_role: Role) -> FrozenSet[Role]:
    """Hierarchical admin roles an actor may list.

    Matches the assignment table: an administrator sees exactly the admin
    tiers it could have assigned.
    """
    roles = assignable_roles(actor_role)
    if not roles:
        raise ForbiddenError(
            "User does not have permission to view hierarchical admins",
            details={"role": actor_role.value}
        )
    return roles
