"""
Entitlement resolution.

Every decision reads one derived value, the set of active feature names
for an office. ``is_feature_active``, listing and batch checks are all
computed from that set, so they cannot disagree.
"""

import math
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

from shared.errors import NotFoundError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import FeatureCatalog, FeatureGroupStatus, Grant, utc_now


def live_group_ids(catalog: FeatureCatalog, grants: Iterable[Grant], now: datetime) -> FrozenSet[str]:
    """Groups in effect for an office.

    A persisted grant row decides on its own; a free group with no row
    is in effect by default.
    """
    by_group = {g.feature_group_id: g for g in grants}
    live = set()
    for group in catalog.groups.values():
        grant = by_group.get(group.id)
        if grant is not None:
            if grant.is_live(now):
                live.add(group.id)
        elif not group.is_paid:
            live.add(group.id)
    return frozenset(live)


def active_feature_names(catalog: FeatureCatalog, grants: Iterable[Grant], now: datetime) -> FrozenSet[str]:
    names = set()
    for group_id in live_group_ids(catalog, grants, now):
        for feature in catalog.features_of(catalog.groups[group_id]):
            if feature.is_active:
                names.add(feature.name)
    return frozenset(names)


def is_feature_active(catalog: FeatureCatalog, grants: Iterable[Grant], name: str, now: datetime) -> bool:
    return name in active_feature_names(catalog, grants, now)


def check_many(
    catalog: FeatureCatalog,
    grants: Iterable[Grant],
    names: Iterable[str],
    now: datetime
) -> Dict[str, bool]:
    active = active_feature_names(catalog, grants, now)
    return {name: name in active for name in names}


def seconds_until_next_expiry(grants: Iterable[Grant], now: datetime) -> Optional[float]:
    """Seconds until the earliest live grant expires, or None."""
    upcoming = [
        g.expires_at for g in grants
        if g.is_live(now) and g.expires_at is not None
    ]
    if not upcoming:
        return None
    return (min(upcoming) - now).total_seconds()


class EntitlementResolver:
    """Answers feature questions for an office from the catalog and its grants."""

    def __init__(
        self,
        catalog_store,
        grant_store,
        offices,
        clock: Callable[[], datetime] = utc_now,
        cache=None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.catalog_store = catalog_store
        self.grant_store = grant_store
        self.offices = offices
        self.clock = clock
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("policy.entitlements")

    async def _require_office(self, office_id: str) -> None:
        if await self.offices.get(office_id) is None:
            raise NotFoundError("Office not found", details={"id": office_id})

    async def active_features(self, office_id: str) -> FrozenSet[str]:
        """The live feature set for ``office_id``."""
        await self._require_office(office_id)

        if self.cache:
            cached = await self.cache.get_feature_names(office_id)
            if cached is not None:
                return cached

        now = self.clock()
        catalog = await self.catalog_store.catalog()
        grants = await self.grant_store.grants_for_office(office_id)
        names = active_feature_names(catalog, grants, now)

        if self.cache:
            ttl = self.cache.default_ttl
            remaining = seconds_until_next_expiry(grants, now)
            if remaining is not None:
                ttl = min(ttl, math.floor(remaining))
            await self.cache.set_feature_names(office_id, names, ttl)

        return names

    async def is_feature_active(self, office_id: str, feature_name: str) -> bool:
        if self.metrics:
            with self.metrics.entitlement_check():
                active = feature_name in await self.active_features(office_id)
            self.metrics.record_entitlement_check(active)
        else:
            active = feature_name in await self.active_features(office_id)

        self.logger.debug(
            "Feature check",
            office_id=office_id,
            feature=feature_name,
            active=active
        )
        return active

    async def list_active_feature_names(self, office_id: str) -> List[str]:
        return sorted(await self.active_features(office_id))

    async def check_many(self, office_id: str, names: Iterable[str]) -> Dict[str, bool]:
        active = await self.active_features(office_id)
        return {name: name in active for name in names}

    async def available_feature_groups(self, office_id: str) -> List[FeatureGroupStatus]:
        """Every feature group with its effective status for the office."""
        await self._require_office(office_id)

        now = self.clock()
        catalog = await self.catalog_store.catalog()
        grants = await self.grant_store.grants_for_office(office_id)
        live = live_group_ids(catalog, grants, now)
        by_group = {g.feature_group_id: g for g in grants}

        statuses = []
        for group in sorted(catalog.groups.values(), key=lambda g: g.name):
            grant = by_group.get(group.id)
            statuses.append(FeatureGroupStatus(
                group=group,
                granted=group.id in live,
                expires_at=grant.expires_at if grant is not None and group.id in live else None
            ))
        return statuses
