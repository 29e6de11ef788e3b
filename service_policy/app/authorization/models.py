"""
Authorization data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from shared.errors import ForbiddenError
from ..hierarchy.roles import Role


class Transition(str, Enum):
    """Activation-state transitions on a principal."""
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"

    @property
    def target_state(self) -> bool:
        """``is_active`` value after the transition."""
        return self is Transition.ACTIVATE


class DenialReason(str, Enum):
    """Why an administrative action was denied."""
    NOT_ADMINISTRATOR = "not_administrator"
    ROLE_HIERARCHY = "role_hierarchy"
    OUTSIDE_SCOPE = "outside_scope"


@dataclass
class Principal:
    """A user account, acting or acted upon."""
    id: str
    role: Role = Role.USER
    scope: Optional[str] = None
    office_id: Optional[str] = None
    is_active: bool = True
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "scope": self.scope,
            "office_id": self.office_id,
            "is_active": self.is_active,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
        }


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    denial: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, denial: DenialReason, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason, denial=denial)

    def raise_for_denial(self) -> None:
        """Raise ForbiddenError if this decision is a denial."""
        if not self.allowed:
            raise ForbiddenError(self.reason, details={"denial": self.denial.value})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "denial": self.denial.value if self.denial else None,
        }


@dataclass(frozen=True)
class BulkFailure:
    """A single target that could not be processed in a bulk operation."""
    id: str
    reason: str


@dataclass
class BulkAuthorizationResult:
    """Per-target partition of a bulk authorization."""
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)


@dataclass
class BulkTransitionResult:
    """Per-target partition of a bulk activate/deactivate."""
    succeeded: List[Principal] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)
