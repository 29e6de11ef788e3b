"""
Activate and deactivate stored principals under the authorizer's rules.
"""

from typing import Dict, Iterable, Optional

from shared.errors import NotFoundError, PolicyError
from shared.logging import get_logger
from ..persistence.base import OfficeDirectory, PrincipalStore
from ..scope.models import Location
from .authorizer import AdministrativeActionAuthorizer
from .models import (
    BulkAuthorizationResult,
    BulkFailure,
    BulkTransitionResult,
    Decision,
    Principal,
    Transition,
)


class UserActivationService:
    """Loads principals, authorizes, and writes the new activation state."""

    def __init__(
        self,
        principals: PrincipalStore,
        offices: OfficeDirectory,
        authorizer: AdministrativeActionAuthorizer
    ):
        self.principals = principals
        self.offices = offices
        self.authorizer = authorizer
        self.logger = get_logger("policy.user_activation")

    async def _load(self, principal_id: str) -> Principal:
        principal = await self.principals.get(principal_id)
        if principal is None:
            raise NotFoundError("User not found", details={"id": principal_id})
        return principal

    async def _location_of(self, principal: Principal) -> Optional[Location]:
        if not principal.office_id:
            return None
        office = await self.offices.get(principal.office_id)
        if office is None:
            raise NotFoundError("Office not found", details={"id": principal.office_id})
        return office.location

    async def evaluate(self, actor_id: str, target_id: str, transition: Transition) -> Decision:
        """Authorize without writing anything."""
        actor = await self._load(actor_id)
        target = await self._load(target_id)
        location = await self._location_of(target)
        return self.authorizer.authorize(actor, target, transition, location)

    async def evaluate_many(
        self,
        actor_id: str,
        target_ids: Iterable[str],
        transition: Transition
    ) -> BulkAuthorizationResult:
        """Authorize each target; unknown targets and offices become failures."""
        actor = await self._load(actor_id)

        targets = []
        locations: Dict[str, Location] = {}
        missing = []
        for target_id in target_ids:
            try:
                target = await self._load(target_id)
                location = await self._location_of(target)
            except NotFoundError as e:
                missing.append(BulkFailure(id=target_id, reason=e.message))
                continue
            targets.append(target)
            if location is not None:
                locations[target.office_id] = location

        result = self.authorizer.authorize_bulk(actor, targets, transition, locations)
        result.failed = missing + result.failed
        return result

    async def transition(self, actor_id: str, target_id: str, transition: Transition) -> Principal:
        """Apply ``transition`` to one principal.

        Raises:
            NotFoundError: actor, target or the target's office is unknown.
            ForbiddenError: the authorizer denied the action.
            InvalidConfigurationError: a stored scope is malformed.
        """
        actor = await self._load(actor_id)
        target = await self._load(target_id)
        return await self._apply(actor, target, transition)

    async def _apply(self, actor: Principal, target: Principal, transition: Transition) -> Principal:
        location = await self._location_of(target)
        self.authorizer.authorize(actor, target, transition, location).raise_for_denial()

        if target.is_active == transition.target_state:
            return target

        target.is_active = transition.target_state
        saved = await self.principals.save(target)

        self.logger.info(
            "User activation state changed",
            actor_id=actor.id,
            target_id=target.id,
            transition=transition.value
        )
        return saved

    async def transition_many(
        self,
        actor_id: str,
        target_ids: Iterable[str],
        transition: Transition
    ) -> BulkTransitionResult:
        """Apply ``transition`` to each target independently."""
        actor = await self._load(actor_id)
        result = BulkTransitionResult()

        for target_id in target_ids:
            try:
                target = await self._load(target_id)
                result.succeeded.append(await self._apply(actor, target, transition))
            except PolicyError as e:
                result.failed.append(BulkFailure(id=target_id, reason=e.message))

        self.logger.info(
            "Bulk user activation finished",
            actor_id=actor_id,
            transition=transition.value,
            succeeded=len(result.succeeded),
            failed=len(result.failed)
        )
        return result
