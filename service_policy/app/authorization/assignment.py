"""
Hierarchical admin assignment.

Promotes users to CITY_ADMIN, STATE_ADMIN or COUNTRY_ADMIN with a scope
derived from a geography id, demotes them back to USER, and lists the
admins an actor may manage.
"""

from datetime import datetime
from typing import Callable, List

from shared.errors import ForbiddenError, InvalidConfigurationError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..entitlements.models import utc_now
from ..hierarchy.assignment import can_assign, visible_admin_roles
from ..hierarchy.roles import Role, is_hierarchical_admin
from ..persistence.base import GeographyDirectory, PrincipalStore
from ..scope import ScopeLevel, Scope, contains, level_for_role, parse_scope, serialize_scope
from .models import Principal


class AdminAssignmentService:
    """Assigns and removes hierarchical admin roles."""

    def __init__(
        self,
        principals: PrincipalStore,
        geography: GeographyDirectory,
        clock: Callable[[], datetime] = utc_now
    ):
        self.principals = principals
        self.geography = geography
        self.clock = clock
        self.logger = get_logger("policy.admin_assignment")

    async def load(self, principal_id: str) -> Principal:
        principal = await self.principals.get(principal_id)
        if principal is None:
            raise NotFoundError("User not found", details={"id": principal_id})
        return principal

    async def _resolve_location(self, level: ScopeLevel, location_id: str):
        lookup = {
            ScopeLevel.CITY: self.geography.city,
            ScopeLevel.STATE: self.geography.state,
            ScopeLevel.COUNTRY: self.geography.country,
        }[level]
        location = await lookup(location_id)
        if location is None:
            raise NotFoundError(
                f"{level.value.title()} not found",
                details={"level": level.value, "id": location_id}
            )
        return location

    def _require_can_assign(self, actor: Principal, role: Role) -> None:
        if not can_assign(actor.role, role):
            raise ForbiddenError(
                f"Role {actor.role.value} cannot assign {role.value}",
                details={"actor_role": actor.role.value, "target_role": role.value}
            )

    def _require_within(self, actor: Principal, scope: Scope) -> None:
        if actor.role == Role.ADMIN:
            return
        if not contains(parse_scope(actor.scope, actor.role), scope):
            raise ForbiddenError("You can only assign admins within your administrative scope")

    async def assign(self, actor: Principal, target_id: str, role: Role, location_id: str) -> Principal:
        """Promote ``target_id`` to ``role`` over ``location_id``.

        Any previous scope is replaced wholesale.
        """
        self._require_can_assign(actor, role)
        target = await self.load(target_id)

        level = level_for_role(role)
        location = await self._resolve_location(level, location_id)
        now = self.clock()
        scope = Scope.for_location(level, location, assigned_by=actor.id, assigned_at=now)

        self._require_within(actor, scope)

        target.role = role
        target.scope = serialize_scope(scope)
        target.assigned_by = actor.id
        target.assigned_at = now
        saved = await self.principals.save(target)

        self.logger.info(
            "Hierarchical admin assigned",
            actor_id=actor.id,
            target_id=target_id,
            role=role.value,
            level=level.value,
            location_id=location_id
        )
        return saved

    async def remove_admin_role(self, actor: Principal, target_id: str) -> Principal:
        """Demote a hierarchical admin to USER and clear the scope."""
        target = await self.load(target_id)
        if not is_hierarchical_admin(target.role):
            raise ValidationError(
                "User is not a hierarchical admin",
                details={"id": target_id, "role": target.role.value}
            )

        self._require_can_assign(actor, target.role)
        self._require_within(actor, parse_scope(target.scope, target.role))

        previous = target.role
        target.role = Role.USER
        target.scope = None
        target.assigned_by = None
        target.assigned_at = None
        saved = await self.principals.save(target)

        self.logger.info(
            "Hierarchical admin removed",
            actor_id=actor.id,
            target_id=target_id,
            previous_role=previous.value
        )
        return saved

    async def visible_admins(self, actor: Principal) -> List[Principal]:
        """Hierarchical admins the actor may manage."""
        roles = visible_admin_roles(actor.role)
        admins = await self.principals.list_by_roles(roles)
        if actor.role == Role.ADMIN:
            return admins

        actor_scope = parse_scope(actor.scope, actor.role)
        visible = []
        for admin in admins:
            try:
                admin_scope = parse_scope(admin.scope, admin.role)
            except InvalidConfigurationError as e:
                # A corrupt row is left out rather than failing the listing
                self.logger.error(
                    "Skipping admin with invalid scope",
                    actor_id=actor.id,
                    admin_id=admin.id,
                    reason=e.message
                )
                continue
            if contains(actor_scope, admin_scope):
                visible.append(admin)
        return visible
