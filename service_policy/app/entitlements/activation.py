"""
Feature group activation for an office.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from shared.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PolicyError,
    ValidationError,
    VerificationFailedError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..hierarchy.roles import Role
from .models import Grant, utc_now

ACTIVATING_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


class GrantActivationWorkflow:
    """Turns a feature group on for an office.

    Free groups activate directly. Paid groups need a token that belongs
    to the group and that the external verifier accepts; the token's
    validity period sets the expiry.
    """

    def __init__(
        self,
        catalog_store,
        grant_store,
        principals,
        offices,
        verifier,
        clock: Callable[[], datetime] = utc_now,
        cache=None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.catalog_store = catalog_store
        self.grant_store = grant_store
        self.principals = principals
        self.offices = offices
        self.verifier = verifier
        self.clock = clock
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("policy.grant_activation")

    async def activate(
        self,
        office_id: str,
        feature_group_id: str,
        token_name: Optional[str],
        actor_id: str
    ) -> Grant:
        """Activate ``feature_group_id`` for ``office_id``.

        Raises:
            NotFoundError: office, actor, group or token is unknown.
            ForbiddenError: the actor is neither ADMIN nor MANAGER.
            ConflictError: the group is already live for the office.
            ValidationError: token missing, for another group, or inactive.
            VerificationFailedError: the external verifier rejected the token.
        """
        try:
            grant = await self._activate(office_id, feature_group_id, token_name, actor_id)
        except PolicyError as e:
            self._record("failed" if e.code != "CONFLICT" else "conflict")
            self.logger.info(
                "Feature group activation refused",
                office_id=office_id,
                feature_group_id=feature_group_id,
                actor_id=actor_id,
                code=e.code,
                reason=e.message
            )
            raise

        self._record("activated")
        return grant

    async def _activate(
        self,
        office_id: str,
        feature_group_id: str,
        token_name: Optional[str],
        actor_id: str
    ) -> Grant:
        if await self.offices.get(office_id) is None:
            raise NotFoundError("Office not found", details={"id": office_id})

        actor = await self.principals.get(actor_id)
        if actor is None:
            raise NotFoundError("User not found", details={"id": actor_id})

        group = await self.catalog_store.get_feature_group(feature_group_id)
        if group is None:
            raise NotFoundError("Feature group not found", details={"id": feature_group_id})

        if actor.role not in ACTIVATING_ROLES:
            raise ForbiddenError("Only administrators and managers can activate feature groups")

        now = self.clock()
        for existing in await self.grant_store.grants_for_office(office_id):
            if existing.feature_group_id == group.id and existing.is_live(now):
                raise ConflictError(
                    "Feature group is already active for this office",
                    details={"office_id": office_id, "feature_group_id": group.id}
                )

        grant = Grant(
            id=str(uuid.uuid4()),
            office_id=office_id,
            feature_group_id=feature_group_id,
            is_active=True,
            activated_at=now,
        )

        if group.is_paid:
            token = await self._verified_token(group.id, token_name)
            grant.token_id = token.id
            # Zero or unset means the grant never expires
            if token.expires_in_days:
                grant.expires_at = now + timedelta(days=token.expires_in_days)

        # Concurrent activations of the same pair are settled by the store
        saved = await self.grant_store.upsert_activation(grant, now)

        if self.cache:
            await self.cache.invalidate_office(office_id)

        self.logger.info(
            "Feature group activated",
            office_id=office_id,
            feature_group_id=feature_group_id,
            actor_id=actor_id,
            paid=group.is_paid,
            expires_at=saved.expires_at.isoformat() if saved.expires_at else None
        )
        return saved

    async def _verified_token(self, group_id: str, token_name: Optional[str]):
        if not token_name:
            raise ValidationError("Token name is required for paid feature groups")

        token = await self.catalog_store.get_token_by_name(token_name)
        if token is None:
            raise NotFoundError("Token configuration not found", details={"token_name": token_name})
        if token.feature_group_id != group_id:
            raise ValidationError(
                "Token does not belong to this feature group",
                details={"token_name": token_name, "feature_group_id": group_id}
            )
        if not token.is_active:
            raise ValidationError("Token configuration is not active", details={"token_name": token_name})
        if token.expires_in_days is not None and token.expires_in_days < 0:
            raise ValidationError(
                "Token configuration has a negative validity period",
                details={"token_name": token_name, "expires_in_days": token.expires_in_days}
            )

        result = await self.verifier.verify(token_name)
        if not result.valid:
            raise VerificationFailedError(result.message or "Token validation failed")
        return token

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_grant_activation(outcome)
