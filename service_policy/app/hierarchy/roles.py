"""
Principal roles and their privilege order.
"""

from enum import Enum
from typing import Dict, FrozenSet, Union

from shared.errors import InvalidConfigurationError


class Role(str, Enum):
    """Principal roles, declared in ascending privilege."""
    USER = "USER"
    MANAGER = "MANAGER"
    CITY_ADMIN = "CITY_ADMIN"
    STATE_ADMIN = "STATE_ADMIN"
    COUNTRY_ADMIN = "COUNTRY_ADMIN"
    ADMIN = "ADMIN"


_RANKS: Dict[Role, int] = {
    Role.USER: 0,
    Role.MANAGER: 1,
    Role.CITY_ADMIN: 2,
    Role.STATE_ADMIN: 3,
    Role.COUNTRY_ADMIN: 4,
    Role.ADMIN: 5,
}

HIERARCHICAL_ADMIN_ROLES: FrozenSet[Role] = frozenset({
    Role.CITY_ADMIN,
    Role.STATE_ADMIN,
    Role.COUNTRY_ADMIN,
})


def rank(role: Role) -> int:
    """Position of ``role`` in the privilege order."""
    return _RANKS[role]


def has_equal_or_higher_rank(a: Role, b: Role) -> bool:
    """True if ``a`` is at least as privileged as ``b``."""
    return _RANKS[a] >= _RANKS[b]


def is_hierarchical_admin(role: Role) -> bool:
    return role in HIERARCHICAL_ADMIN_ROLES


def parse_role(value: Union[str, Role]) -> Role:
    """Parse a stored role value, accepting either case."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).upper())
    except ValueError:
        raise InvalidConfigurationError(
            f"Unknown role: {value}",
            details={"role": value}
        )
