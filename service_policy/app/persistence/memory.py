"""
In-memory stores.

Used by the service when no database is configured, and by the tests.
"""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from shared.errors import ConflictError
from ..authorization.models import Principal
from ..entitlements.models import (
    Feature,
    FeatureCatalog,
    FeatureGroup,
    Grant,
    Office,
    TokenConfiguration,
)
from ..hierarchy.roles import Role
from ..scope.models import Location


class InMemoryPrincipalStore:
    """Principals keyed by id."""

    def __init__(self, principals: Iterable[Principal] = ()):
        self._principals: Dict[str, Principal] = {p.id: p for p in principals}

    async def get(self, principal_id: str) -> Optional[Principal]:
        return self._principals.get(principal_id)

    async def save(self, principal: Principal) -> Principal:
        self._principals[principal.id] = principal
        return principal

    async def list_by_roles(self, roles: Iterable[Role]) -> List[Principal]:
        wanted = set(roles)
        return [p for p in self._principals.values() if p.role in wanted]


class InMemoryOfficeDirectory:
    def __init__(self, offices: Iterable[Office] = ()):
        self._offices: Dict[str, Office] = {o.id: o for o in offices}

    async def get(self, office_id: str) -> Optional[Office]:
        return self._offices.get(office_id)

    def add(self, office: Office) -> None:
        self._offices[office.id] = office


class InMemoryGeographyDirectory:
    """City/state/country chains built from (city, state, country) triples."""

    def __init__(self, cities: Iterable[Tuple[str, str, str]] = (), states: Iterable[Tuple[str, str]] = ()):
        self._cities: Dict[str, Location] = {}
        self._states: Dict[str, Location] = {}
        self._countries: Dict[str, Location] = {}

        for state_id, country_id in states:
            self._add_state(state_id, country_id)
        for city_id, state_id, country_id in cities:
            self._add_state(state_id, country_id)
            self._cities[str(city_id)] = Location(str(country_id), str(state_id), str(city_id))

    def _add_state(self, state_id: str, country_id: str) -> None:
        self._states[str(state_id)] = Location(str(country_id), str(state_id))
        self._countries[str(country_id)] = Location(str(country_id))

    async def city(self, city_id: str) -> Optional[Location]:
        return self._cities.get(str(city_id))

    async def state(self, state_id: str) -> Optional[Location]:
        return self._states.get(str(state_id))

    async def country(self, country_id: str) -> Optional[Location]:
        return self._countries.get(str(country_id))


class InMemoryCatalogStore:
    """Features, feature groups and token configurations."""

    def __init__(
        self,
        features: Iterable[Feature] = (),
        groups: Iterable[FeatureGroup] = (),
        tokens: Iterable[TokenConfiguration] = ()
    ):
        self._catalog = FeatureCatalog.build(features, groups)
        self._tokens: Dict[str, TokenConfiguration] = {t.token_name: t for t in tokens}

    async def catalog(self) -> FeatureCatalog:
        return self._catalog

    async def get_feature_group(self, group_id: str) -> Optional[FeatureGroup]:
        return self._catalog.groups.get(group_id)

    async def get_token_by_name(self, token_name: str) -> Optional[TokenConfiguration]:
        return self._tokens.get(token_name)


class InMemoryGrantStore:
    """Grants keyed by (office, group).

    Activation holds a single store-wide asyncio.Lock, so two concurrent
    activations of the same pair cannot both observe "not live".
    """

    def __init__(self, grants: Iterable[Grant] = ()):
        self._grants: Dict[Tuple[str, str], Grant] = {
            (g.office_id, g.feature_group_id): g for g in grants
        }
        self._lock = asyncio.Lock()

    async def grants_for_office(self, office_id: str) -> List[Grant]:
        return [g for (oid, _), g in self._grants.items() if oid == office_id]

    async def get_grant(self, office_id: str, feature_group_id: str) -> Optional[Grant]:
        return self._grants.get((office_id, feature_group_id))

    async def upsert_activation(self, grant: Grant, now: datetime) -> Grant:
        key = (grant.office_id, grant.feature_group_id)
        async with self._lock:
            existing = self._grants.get(key)
            if existing is not None and existing.is_live(now):
                raise ConflictError(
                    "Feature group is already active for this office",
                    details={"office_id": grant.office_id, "feature_group_id": grant.feature_group_id}
                )
            if existing is not None:
                grant.id = existing.id
            self._grants[key] = grant
            return grant

    async def deactivate_expired(self, now: datetime) -> int:
        count = 0
        for grant in self._grants.values():
            if grant.is_active and grant.expires_at is not None and grant.expires_at < now:
                grant.is_active = False
                count += 1
        return count

    async def grant_stats(self, now: datetime) -> Dict[str, int]:
        grants = list(self._grants.values())
        return {
            "total_grants": len(grants),
            "live_grants": sum(1 for g in grants if g.is_live(now)),
            "expired_unswept": sum(
                1 for g in grants
                if g.is_active and g.expires_at is not None and g.expires_at <= now
            ),
            "inactive_grants": sum(1 for g in grants if not g.is_active),
        }
