"""
Administrative action authorizer.

Decides whether an actor may activate or deactivate a target principal.
Denials are returned as Decision values; a broken actor or target scope
raises InvalidConfigurationError because it is a data defect, not a
policy outcome.
"""

from typing import Iterable, Mapping, Optional

from shared.errors import PolicyError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..hierarchy.roles import Role, has_equal_or_higher_rank, is_hierarchical_admin
from ..scope import Location, parse_scope, contains, covers_location
from .models import (
    Principal,
    Transition,
    DenialReason,
    Decision,
    BulkFailure,
    BulkAuthorizationResult,
)


class AdministrativeActionAuthorizer:
    """Role, rank and scope checks for activation-state transitions."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("policy.authorizer")
        self.metrics = metrics

    def authorize(
        self,
        actor: Principal,
        target: Principal,
        transition: Transition,
        target_location: Optional[Location] = None
    ) -> Decision:
        """Decide whether ``actor`` may apply ``transition`` to ``target``.

        Args:
            actor: The principal performing the action.
            target: The principal being acted upon.
            transition: activate or deactivate.
            target_location: Location of the target's office, used when the
                target is not a hierarchical admin.

        Raises:
            InvalidConfigurationError: if the actor's (or an admin target's)
                stored scope is missing or malformed.
        """
        decision = self._decide(actor, target, transition, target_location)

        if self.metrics:
            self.metrics.record_authorization(
                transition.value,
                "allow" if decision.allowed else decision.denial.value
            )
        if not decision.allowed:
            self.logger.info(
                "Administrative action denied",
                actor_id=actor.id,
                target_id=target.id,
                transition=transition.value,
                denial=decision.denial.value
            )
        return decision

    def _decide(
        self,
        actor: Principal,
        target: Principal,
        transition: Transition,
        target_location: Optional[Location]
    ) -> Decision:
        verb = transition.value

        if actor.role == Role.ADMIN:
            return Decision.allow()

        if not is_hierarchical_admin(actor.role):
            return Decision.deny(
                DenialReason.NOT_ADMINISTRATOR,
                f"Only administrators can {verb} users"
            )

        actor_scope = parse_scope(actor.scope, actor.role)

        if has_equal_or_higher_rank(target.role, actor.role):
            return Decision.deny(
                DenialReason.ROLE_HIERARCHY,
                f"You cannot {verb} users with equal or higher administrative roles"
            )

        if is_hierarchical_admin(target.role):
            within = contains(actor_scope, parse_scope(target.scope, target.role))
        elif target_location is not None:
            within = covers_location(actor_scope, target_location)
        else:
            # No office, no location: outside every geographic scope
            within = False

        if not within:
            return Decision.deny(
                DenialReason.OUTSIDE_SCOPE,
                f"You can only {verb} users within your administrative scope"
            )

        return Decision.allow()

    def authorize_bulk(
        self,
        actor: Principal,
        targets: Iterable[Principal],
        transition: Transition,
        office_locations: Optional[Mapping[str, Location]] = None
    ) -> BulkAuthorizationResult:
        """Authorize each target independently.

        Denials and per-target errors become ``failed`` entries; one target
        never aborts the others.
        """
        office_locations = office_locations or {}
        result = BulkAuthorizationResult()

        for target in targets:
            location = office_locations.get(target.office_id) if target.office_id else None
            try:
                decision = self.authorize(actor, target, transition, location)
            except PolicyError as e:
                self.logger.warning(
                    "Bulk authorization item failed",
                    actor_id=actor.id,
                    target_id=target.id,
                    code=e.code,
                    error=e.message
                )
                result.failed.append(BulkFailure(id=target.id, reason=e.message))
                continue

            if decision.allowed:
                result.succeeded.append(target.id)
            else:
                result.failed.append(BulkFailure(id=target.id, reason=decision.reason))

        return result
