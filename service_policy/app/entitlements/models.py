"""
Catalog, tenant and grant models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..scope.models import Location


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


@dataclass
class Office:
    """A tenant."""
    id: str
    name: str
    location: Location = field(default_factory=Location)


@dataclass(frozen=True)
class Feature:
    """A named capability."""
    id: str
    name: str
    is_active: bool = True
    description: Optional[str] = None


@dataclass(frozen=True)
class FeatureGroup:
    """A bundle of features granted together."""
    id: str
    name: str
    app_name: Optional[str] = None
    is_paid: bool = False
    feature_ids: FrozenSet[str] = frozenset()
    description: Optional[str] = None


@dataclass(frozen=True)
class TokenConfiguration:
    """Purchasable token that unlocks a paid feature group."""
    id: str
    token_name: str
    feature_group_id: str
    expires_in_days: Optional[int] = None
    is_active: bool = True


@dataclass
class Grant:
    """A tenant's entitlement to a feature group."""
    id: str
    office_id: str
    feature_group_id: str
    is_active: bool = True
    expires_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    token_id: Optional[str] = None

    def is_live(self, now: datetime) -> bool:
        """Active flag set and not past expiry, swept or not."""
        return self.is_active and (self.expires_at is None or self.expires_at > now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "office_id": self.office_id,
            "feature_group_id": self.feature_group_id,
            "is_active": self.is_active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "token_id": self.token_id,
        }


@dataclass(frozen=True)
class FeatureCatalog:
    """Immutable snapshot of features and feature groups."""
    features: Dict[str, Feature] = field(default_factory=dict)
    groups: Dict[str, FeatureGroup] = field(default_factory=dict)

    @classmethod
    def build(cls, features: Iterable[Feature], groups: Iterable[FeatureGroup]) -> "FeatureCatalog":
        return cls(
            features={f.id: f for f in features},
            groups={g.id: g for g in groups},
        )

    def feature_names(self) -> FrozenSet[str]:
        return frozenset(f.name for f in self.features.values())

    def features_of(self, group: FeatureGroup) -> List[Feature]:
        return [self.features[fid] for fid in sorted(group.feature_ids) if fid in self.features]


@dataclass(frozen=True)
class FeatureGroupStatus:
    """A feature group and whether it is in effect for an office."""
    group: FeatureGroup
    granted: bool
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.group.id,
            "name": self.group.name,
            "app_name": self.group.app_name,
            "is_paid": self.group.is_paid,
            "granted": self.granted,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
