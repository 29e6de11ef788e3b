"""
Storage interfaces used by the policy engine.

The decision and workflow code depends only on these protocols; the
in-memory and PostgreSQL modules provide implementations.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from ..authorization.models import Principal
from ..entitlements.models import (
    FeatureCatalog,
    FeatureGroup,
    Grant,
    Office,
    TokenConfiguration,
)
from ..hierarchy.roles import Role
from ..scope.models import Location


class PrincipalStore(Protocol):
    async def get(self, principal_id: str) -> Optional[Principal]: ...

    async def save(self, principal: Principal) -> Principal: ...

    async def list_by_roles(self, roles: Iterable[Role]) -> List[Principal]: ...


class OfficeDirectory(Protocol):
    async def get(self, office_id: str) -> Optional[Office]: ...


class GeographyDirectory(Protocol):
    """Resolves a city, state or country id to its full chain."""

    async def city(self, city_id: str) -> Optional[Location]: ...

    async def state(self, state_id: str) -> Optional[Location]: ...

    async def country(self, country_id: str) -> Optional[Location]: ...


class CatalogStore(Protocol):
    async def catalog(self) -> FeatureCatalog: ...

    async def get_feature_group(self, group_id: str) -> Optional[FeatureGroup]: ...

    async def get_token_by_name(self, token_name: str) -> Optional[TokenConfiguration]: ...


class GrantStore(Protocol):
    async def grants_for_office(self, office_id: str) -> List[Grant]: ...

    async def get_grant(self, office_id: str, feature_group_id: str) -> Optional[Grant]: ...

    async def upsert_activation(self, grant: Grant, now: datetime) -> Grant:
        """Insert or overwrite the (office, group) row.

        Raises ConflictError if the existing row is live at ``now``.
        """
        ...

    async def deactivate_expired(self, now: datetime) -> int: ...

    async def grant_stats(self, now: datetime) -> Dict[str, int]: ...
