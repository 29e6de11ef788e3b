"""
Scope and location data models.

Two stored shapes are accepted. The level form is what admin assignment
writes::

    {"level": "state", "countryId": 1, "stateId": 5,
     "assignedBy": "user-1", "assignedAt": "2025-01-01T00:00:00+00:00"}

The list form comes from bulk admin creation::

    {"stateIds": ["CA"], "countryIds": ["US"]}

Identifiers are compared as strings.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from shared.errors import InvalidConfigurationError
from ..hierarchy.roles import Role


class ScopeLevel(str, Enum):
    """Scope levels."""
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"


# Broadest first
LEVEL_ORDER = (ScopeLevel.COUNTRY, ScopeLevel.STATE, ScopeLevel.CITY)

LEVEL_BREADTH: Dict[ScopeLevel, int] = {
    ScopeLevel.CITY: 0,
    ScopeLevel.STATE: 1,
    ScopeLevel.COUNTRY: 2,
}

_ROLE_LEVELS: Dict[Role, ScopeLevel] = {
    Role.CITY_ADMIN: ScopeLevel.CITY,
    Role.STATE_ADMIN: ScopeLevel.STATE,
    Role.COUNTRY_ADMIN: ScopeLevel.COUNTRY,
}

_SINGLE_KEYS = {
    ScopeLevel.COUNTRY: "countryId",
    ScopeLevel.STATE: "stateId",
    ScopeLevel.CITY: "cityId",
}

_LIST_KEYS = {
    ScopeLevel.COUNTRY: "countryIds",
    ScopeLevel.STATE: "stateIds",
    ScopeLevel.CITY: "cityIds",
}


def level_for_role(role: Role) -> ScopeLevel:
    """Scope level carried by a hierarchical admin role."""
    try:
        return _ROLE_LEVELS[role]
    except KeyError:
        raise InvalidConfigurationError(
            f"Role {role.value} does not carry an administrative scope",
            details={"role": role.value}
        )


def levels_from(level: ScopeLevel):
    """Levels at and above ``level``, broadest first."""
    return tuple(l for l in LEVEL_ORDER if LEVEL_BREADTH[l] >= LEVEL_BREADTH[level])


@dataclass(frozen=True)
class Location:
    """An office's position in the country/state/city chain."""
    country_id: Optional[str] = None
    state_id: Optional[str] = None
    city_id: Optional[str] = None

    def id_at(self, level: ScopeLevel) -> Optional[str]:
        if level == ScopeLevel.COUNTRY:
            return self.country_id
        if level == ScopeLevel.STATE:
            return self.state_id
        return self.city_id


@dataclass(frozen=True)
class Scope:
    """A hierarchical admin's geographic jurisdiction."""
    level: ScopeLevel
    country_ids: FrozenSet[str] = field(default_factory=frozenset)
    state_ids: FrozenSet[str] = field(default_factory=frozenset)
    city_ids: FrozenSet[str] = field(default_factory=frozenset)
    assigned_by: Optional[str] = field(default=None, compare=False)
    assigned_at: Optional[datetime] = field(default=None, compare=False)

    def ids_at(self, level: ScopeLevel) -> FrozenSet[str]:
        if level == ScopeLevel.COUNTRY:
            return self.country_ids
        if level == ScopeLevel.STATE:
            return self.state_ids
        return self.city_ids

    @classmethod
    def for_location(
        cls,
        level: ScopeLevel,
        location: Location,
        assigned_by: Optional[str] = None,
        assigned_at: Optional[datetime] = None
    ) -> "Scope":
        """Scope at ``level`` covering the chain of ``location``."""
        ids = {}
        for current in levels_from(level):
            value = location.id_at(current)
            if value is None:
                raise InvalidConfigurationError(
                    f"Location is missing a {current.value} identifier",
                    details={"level": level.value}
                )
            ids[current] = frozenset({value})
        return cls(
            level=level,
            country_ids=ids.get(ScopeLevel.COUNTRY, frozenset()),
            state_ids=ids.get(ScopeLevel.STATE, frozenset()),
            city_ids=ids.get(ScopeLevel.CITY, frozenset()),
            assigned_by=assigned_by,
            assigned_at=assigned_at,
        )


def _invalid(reason: str, **details) -> InvalidConfigurationError:
    return InvalidConfigurationError(f"Invalid admin scope: {reason}", details=details)


def _normalize_id(value: Any, key: str) -> str:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise _invalid(f"{key} must be a string or integer", key=key)
    text = str(value).strip()
    if not text:
        raise _invalid(f"{key} must not be empty", key=key)
    return text


def _normalize_ids(values: Any, key: str) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if not isinstance(values, list):
        raise _invalid(f"{key} must be a list", key=key)
    return frozenset(_normalize_id(v, key) for v in values)


def _parse_assigned_at(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise _invalid("assignedAt must be an ISO-8601 string")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise _invalid("assignedAt must be an ISO-8601 string")


def _decode(raw: Union[str, Mapping[str, Any], None]) -> Mapping[str, Any]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise _invalid("scope is missing")
    if isinstance(raw, Mapping):
        return raw
    if not isinstance(raw, str):
        raise _invalid("scope must be a JSON object")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise _invalid("scope is not valid JSON")
    if not isinstance(data, dict):
        raise _invalid("scope must be a JSON object")
    return data


def _collect_ids(data: Mapping[str, Any], level: ScopeLevel) -> FrozenSet[str]:
    ids = set(_normalize_ids(data.get(_LIST_KEYS[level]), _LIST_KEYS[level]))
    single = data.get(_SINGLE_KEYS[level])
    if single is not None:
        ids.add(_normalize_id(single, _SINGLE_KEYS[level]))
    return frozenset(ids)


def parse_scope(raw: Union[str, Mapping[str, Any], None], role: Optional[Role] = None) -> Scope:
    """Parse a stored admin scope.

    A level-form scope (single ``countryId``/``stateId``/``cityId`` keys)
    must name every identifier from its level up to the country. A
    list-form scope only has to name its own level, with or without a
    ``level`` key.

    Args:
        raw: JSON string (or already-decoded mapping) from the principal record.
        role: When given, the scope's level must match the role's level.

    Raises:
        InvalidConfigurationError: if the scope is missing or malformed.
    """
    expected = level_for_role(role) if role is not None else None
    data = _decode(raw)
    ids = {current: _collect_ids(data, current) for current in LEVEL_ORDER}

    if "level" in data:
        try:
            level = ScopeLevel(data["level"])
        except (ValueError, TypeError):
            raise _invalid(f"unknown level {data['level']!r}")
        if any(key in data for key in _SINGLE_KEYS.values()):
            required = levels_from(level)
        else:
            required = (level,)
    else:
        level = expected
        if level is None:
            # Most specific level that names anything
            for current in reversed(LEVEL_ORDER):
                if ids[current]:
                    level = current
                    break
        if level is None:
            raise _invalid("scope names no country, state or city")
        required = (level,)

    if expected is not None and level != expected:
        raise _invalid(
            f"level {level.value} does not match role level {expected.value}",
            level=level.value,
            expected=expected.value
        )

    for current in required:
        if not ids[current]:
            raise _invalid(
                f"{level.value} scope requires at least one {current.value} ID",
                level=level.value,
                missing=current.value
            )

    return Scope(
        level=level,
        country_ids=ids[ScopeLevel.COUNTRY],
        state_ids=ids[ScopeLevel.STATE],
        city_ids=ids[ScopeLevel.CITY],
        assigned_by=data.get("assignedBy"),
        assigned_at=_parse_assigned_at(data.get("assignedAt")),
    )


def serialize_scope(scope: Scope) -> str:
    """Serialize a scope, preferring the level form."""
    required = levels_from(scope.level)
    data: Dict[str, Any] = {"level": scope.level.value}

    single = all(len(scope.ids_at(l)) == 1 for l in required) and all(
        not scope.ids_at(l) for l in LEVEL_ORDER if l not in required
    )
    for current in LEVEL_ORDER:
        ids = scope.ids_at(current)
        if not ids:
            continue
        if single:
            data[_SINGLE_KEYS[current]] = next(iter(ids))
        else:
            data[_LIST_KEYS[current]] = sorted(ids)

    if scope.assigned_by is not None:
        data["assignedBy"] = scope.assigned_by
    if scope.assigned_at is not None:
        data["assignedAt"] = scope.assigned_at.isoformat()
    return json.dumps(data, sort_keys=True)
