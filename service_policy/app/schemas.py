"""
Request models for the policy service.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .authorization.models import Transition
from .hierarchy.roles import Role


class AuthorizeRequest(BaseModel):
    """Request model for a single authorization check."""
    actor_id: str = Field(..., description="Acting user ID")
    target_id: str = Field(..., description="Target user ID")
    transition: Transition = Field(..., description="activate or deactivate")


class BulkAuthorizeRequest(BaseModel):
    """Request model for a bulk authorization check."""
    actor_id: str = Field(..., description="Acting user ID")
    target_ids: List[str] = Field(..., description="Target user IDs")
    transition: Transition = Field(..., description="activate or deactivate")


class UserTransitionRequest(BaseModel):
    actor_id: str = Field(..., description="Acting user ID")


class BulkUserTransitionRequest(BaseModel):
    actor_id: str = Field(..., description="Acting user ID")
    target_ids: List[str] = Field(..., description="Target user IDs")


class AssignAdminRequest(BaseModel):
    """Request model for promoting a user to a hierarchical admin role."""
    actor_id: str = Field(..., description="Acting user ID")
    target_id: str = Field(..., description="User to promote")
    role: Role = Field(..., description="CITY_ADMIN, STATE_ADMIN or COUNTRY_ADMIN")
    location_id: str = Field(..., description="City, state or country ID matching the role")


class FeatureCheckRequest(BaseModel):
    features: List[str] = Field(..., description="Feature names to check")


class ActivateFeatureGroupRequest(BaseModel):
    """Request model for activating a feature group."""
    actor_id: str = Field(..., description="Acting user ID")
    token_name: Optional[str] = Field(None, description="Purchased token, required for paid groups")


class ExecuteFeatureRequest(BaseModel):
    payload: Dict[str, Any] = Field(default_factory=dict, description="Handler input")
