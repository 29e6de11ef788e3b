"""
Administrative authorization package.

- models: principals, transitions, decisions and bulk results.
- authorizer: the pure decision over (actor, target, transition).
- activation: applies activate/deactivate to stored principals.
- assignment: promotes and demotes hierarchical admins.
"""

from .models import (
    Principal,
    Transition,
    DenialReason,
    Decision,
    BulkFailure,
    BulkAuthorizationResult,
    BulkTransitionResult,
)
from .authorizer import AdministrativeActionAuthorizer

__all__ = [
    "Principal",
    "Transition",
    "DenialReason",
    "Decision",
    "BulkFailure",
    "BulkAuthorizationResult",
    "BulkTransitionResult",
    "AdministrativeActionAuthorizer",
]
