"""
Policy service: administrative authorization and office entitlements.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .authorization.activation import UserActivationService
from .authorization.assignment import AdminAssignmentService
from .authorization.authorizer import AdministrativeActionAuthorizer
from .authorization.models import Transition
from .cache.redis_cache import EntitlementCache
from .entitlements.activation import GrantActivationWorkflow
from .entitlements.expiration import ExpirationSweeper
from .entitlements.handlers import FeatureDispatcher, FeatureHandler, FeatureHandlers
from .entitlements.models import utc_now
from .entitlements.resolver import EntitlementResolver
from .hierarchy.assignment import can_assign
from .hierarchy.roles import Role
from .persistence.memory import (
    InMemoryCatalogStore,
    InMemoryGeographyDirectory,
    InMemoryGrantStore,
    InMemoryOfficeDirectory,
    InMemoryPrincipalStore,
)
from .persistence.postgres import PostgreSQLPersistence
from .schemas import (
    ActivateFeatureGroupRequest,
    AssignAdminRequest,
    AuthorizeRequest,
    BulkAuthorizeRequest,
    BulkUserTransitionRequest,
    ExecuteFeatureRequest,
    FeatureCheckRequest,
    UserTransitionRequest,
)
from .verification.token_verifier import TokenVerifier, build_token_verifier


@dataclass
class PolicyStores:
    """Storage collaborators; in-memory unless replaced."""
    principals: Any = field(default_factory=InMemoryPrincipalStore)
    offices: Any = field(default_factory=InMemoryOfficeDirectory)
    geography: Any = field(default_factory=InMemoryGeographyDirectory)
    catalog: Any = field(default_factory=InMemoryCatalogStore)
    grants: Any = field(default_factory=InMemoryGrantStore)


class PolicyService(BaseService):
    """Policy service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        stores: Optional[PolicyStores] = None,
        verifier: Optional[TokenVerifier] = None,
        handlers: Optional[Mapping[str, FeatureHandler]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        super().__init__("policy", 8020, config or get_config("policy", 8020))

        self.persistence: Optional[PostgreSQLPersistence] = None
        if stores is None:
            stores = PolicyStores()
            if self.config.postgres_dsn:
                self.persistence = PostgreSQLPersistence(self.config.postgres_dsn)
                stores.catalog = self.persistence
                stores.grants = self.persistence
        self.stores = stores

        self.cache: Optional[EntitlementCache] = None
        if self.config.redis_url:
            self.cache = EntitlementCache(
                self.config.redis_url,
                default_ttl=self.config.entitlement_cache_ttl_seconds
            )

        self.verifier = verifier or build_token_verifier(self.config, self.metrics)
        self.authorizer = AdministrativeActionAuthorizer(self.metrics)
        self.user_activation = UserActivationService(stores.principals, stores.offices, self.authorizer)
        self.admin_assignment = AdminAssignmentService(stores.principals, stores.geography, clock)
        self.resolver = EntitlementResolver(
            stores.catalog,
            stores.grants,
            stores.offices,
            clock=clock,
            cache=self.cache,
            metrics=self.metrics
        )
        self.workflow = GrantActivationWorkflow(
            stores.catalog,
            stores.grants,
            stores.principals,
            stores.offices,
            self.verifier,
            clock=clock,
            cache=self.cache,
            metrics=self.metrics
        )
        self.sweeper = ExpirationSweeper(
            stores.grants,
            clock=clock,
            interval_seconds=self.config.expiration_sweep_interval_seconds,
            metrics=self.metrics
        )
        self.handlers = FeatureHandlers.from_mapping(handlers or {})
        self.dispatcher = FeatureDispatcher(self.resolver, self.handlers)

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_policy_routes()
        self._setup_entitlement_routes()

        self.app.state.policy_service = self

    def _setup_policy_routes(self):
        """Set up administrative authorization routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "policy",
                "message": "Office Policy & Entitlement Engine",
                "version": "1.0.0",
                "capabilities": ["authorization", "admin_assignment", "entitlements", "grant_activation"]
            }

        @self.app.post("/policy/authorize")
        async def authorize(request: AuthorizeRequest):
            """Decide whether the actor may activate or deactivate the target."""
            decision = await self.user_activation.evaluate(
                request.actor_id, request.target_id, request.transition
            )
            return decision.to_dict()

        @self.app.post("/policy/authorize/bulk")
        async def authorize_bulk(request: BulkAuthorizeRequest):
            """Authorize each target independently."""
            result = await self.user_activation.evaluate_many(
                request.actor_id, request.target_ids, request.transition
            )
            return {
                "succeeded": result.succeeded,
                "failed": [{"id": f.id, "reason": f.reason} for f in result.failed]
            }

        @self.app.post("/policy/users/bulk/{transition}")
        async def transition_users(transition: Transition, request: BulkUserTransitionRequest):
            """Activate or deactivate several users."""
            result = await self.user_activation.transition_many(
                request.actor_id, request.target_ids, transition
            )
            return {
                "succeeded": [p.to_dict() for p in result.succeeded],
                "failed": [{"id": f.id, "reason": f.reason} for f in result.failed]
            }

        @self.app.post("/policy/users/{target_id}/{transition}")
        async def transition_user(target_id: str, transition: Transition, request: UserTransitionRequest):
            """Activate or deactivate one user."""
            principal = await self.user_activation.transition(request.actor_id, target_id, transition)
            return principal.to_dict()

        @self.app.get("/policy/assignments/can-assign")
        async def check_can_assign(
            actor_role: Role = Query(..., description="Role of the assigning user"),
            target_role: Role = Query(..., description="Role to assign")
        ):
            """Check the fixed assignment table."""
            return {"allowed": can_assign(actor_role, target_role)}

        @self.app.post("/policy/admins")
        async def assign_admin(request: AssignAdminRequest):
            """Promote a user to a hierarchical admin role."""
            actor = await self.admin_assignment.load(request.actor_id)
            principal = await self.admin_assignment.assign(
                actor, request.target_id, request.role, request.location_id
            )
            return principal.to_dict()

        @self.app.delete("/policy/admins/{target_id}")
        async def remove_admin(target_id: str, actor_id: str = Query(..., description="Acting user ID")):
            """Demote a hierarchical admin to USER."""
            actor = await self.admin_assignment.load(actor_id)
            principal = await self.admin_assignment.remove_admin_role(actor, target_id)
            return principal.to_dict()

        @self.app.get("/policy/admins")
        async def list_admins(actor_id: str = Query(..., description="Acting user ID")):
            """Hierarchical admins the actor may manage."""
            actor = await self.admin_assignment.load(actor_id)
            admins = await self.admin_assignment.visible_admins(actor)
            return {"admins": [a.to_dict() for a in admins]}

    def _setup_entitlement_routes(self):
        """Set up office entitlement routes."""

        @self.app.get("/offices/{office_id}/features")
        async def list_features(office_id: str):
            """Names of every feature active for the office."""
            features = await self.resolver.list_active_feature_names(office_id)
            return {"office_id": office_id, "features": features}

        @self.app.post("/offices/{office_id}/features/check")
        async def check_features(office_id: str, request: FeatureCheckRequest):
            """Check several features at once."""
            results = await self.resolver.check_many(office_id, request.features)
            return {"office_id": office_id, "results": results}

        @self.app.get("/offices/{office_id}/features/{feature_name}")
        async def check_feature(office_id: str, feature_name: str):
            """Check one feature."""
            active = await self.resolver.is_feature_active(office_id, feature_name)
            return {"office_id": office_id, "feature": feature_name, "active": active}

        @self.app.post("/offices/{office_id}/features/{feature_name}/execute")
        async def execute_feature(office_id: str, feature_name: str, request: ExecuteFeatureRequest):
            """Run a feature's handler if the office has the feature."""
            result = await self.dispatcher.dispatch(office_id, feature_name, request.payload)
            return {"office_id": office_id, "feature": feature_name, "result": result}

        @self.app.get("/offices/{office_id}/feature-groups")
        async def list_feature_groups(office_id: str):
            """Every feature group with its status for the office."""
            statuses = await self.resolver.available_feature_groups(office_id)
            return {"office_id": office_id, "feature_groups": [s.to_dict() for s in statuses]}

        @self.app.post("/offices/{office_id}/feature-groups/{group_id}/activate")
        async def activate_feature_group(office_id: str, group_id: str, request: ActivateFeatureGroupRequest):
            """Activate a free or token-gated feature group."""
            grant = await self.workflow.activate(office_id, group_id, request.token_name, request.actor_id)
            return grant.to_dict()

        @self.app.post("/policy/grants/sweep")
        async def sweep_grants():
            """Deactivate expired grants now."""
            return {"deactivated": await self.sweeper.sweep_expired()}

        @self.app.get("/policy/grants/stats")
        async def grant_stats():
            """Grant counts by state."""
            return await self.sweeper.grant_stats()

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check policy service dependencies."""
        dependencies = {}

        if self.cache:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"

        if self.persistence:
            dependencies["postgres"] = "ok" if await self.persistence.health_check() else "error"

        return dependencies

    async def start(self):
        """Start policy service components."""
        if self.persistence:
            await self.persistence.start()
        if self.cache:
            await self.cache.start()

        catalog = await self.stores.catalog.catalog()
        self.handlers.validate_names(catalog.feature_names())

        if self.config.enable_expiration_sweeper:
            await self.sweeper.start()

        self.logger.info("Policy service started", handlers=sorted(self.handlers.names()))

    async def stop(self):
        """Stop policy service components."""
        await self.sweeper.stop()
        if self.cache:
            await self.cache.stop()
        if self.persistence:
            await self.persistence.stop()

        self.logger.info("Policy service stopped")


def create_app(**kwargs):
    """Create policy service application."""
    service = PolicyService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = PolicyService()
    service.run()
