"""
Unit tests for the user activation service.
"""

import pytest

from service_policy.app.authorization import AdministrativeActionAuthorizer, DenialReason, Transition
from service_policy.app.authorization.activation import UserActivationService
from service_policy.app.hierarchy import Role
from service_policy.app.persistence import InMemoryOfficeDirectory, InMemoryPrincipalStore
from shared.errors import ForbiddenError, InvalidConfigurationError, NotFoundError
from shared.test_helpers import PolicyDataFactory, make_principal


class TestUserActivationService:
    """Test cases for UserActivationService."""

    @pytest.fixture
    def principals(self):
        return InMemoryPrincipalStore(PolicyDataFactory.create_principals())

    @pytest.fixture
    def service(self, principals):
        """Create UserActivationService with in-memory stores."""
        return UserActivationService(
            principals,
            InMemoryOfficeDirectory(PolicyDataFactory.create_offices()),
            AdministrativeActionAuthorizer()
        )

    @pytest.mark.asyncio
    async def test_state_admin_deactivates_user_in_state(self, service, principals):
        """Test deactivating a user in the admin's state."""
        result = await service.transition("state-ca", "user-sf", Transition.DEACTIVATE)

        assert result.is_active is False
        assert (await principals.get("user-sf")).is_active is False

    @pytest.mark.asyncio
    async def test_state_admin_denied_outside_state(self, service, principals):
        """Test deactivating a user in another state is forbidden."""
        with pytest.raises(ForbiddenError) as exc_info:
            await service.transition("state-ca", "user-nyc", Transition.DEACTIVATE)

        assert exc_info.value.message == "You can only deactivate users within your administrative scope"
        assert (await principals.get("user-nyc")).is_active is True

    @pytest.mark.asyncio
    async def test_already_in_target_state_is_not_written(self, service, principals):
        """Test activating an active user returns it unchanged."""
        saved = []
        original_save = principals.save

        async def tracking_save(principal):
            saved.append(principal.id)
            return await original_save(principal)

        principals.save = tracking_save

        result = await service.transition("admin", "user-la", Transition.ACTIVATE)

        assert result.is_active is True
        assert saved == []

    @pytest.mark.asyncio
    async def test_already_in_target_state_still_authorized(self, service):
        """Test a no-op transition is still denied when not allowed."""
        with pytest.raises(ForbiddenError):
            await service.transition("manager-la", "user-la", Transition.ACTIVATE)

    @pytest.mark.asyncio
    async def test_activate_inactive_user(self, service):
        """Test re-activating an inactive user."""
        result = await service.transition("city-la", "user-inactive", Transition.ACTIVATE)

        assert result.is_active is True

    @pytest.mark.asyncio
    async def test_unknown_principals(self, service):
        """Test missing actor or target."""
        with pytest.raises(NotFoundError):
            await service.transition("ghost", "user-la", Transition.DEACTIVATE)
        with pytest.raises(NotFoundError):
            await service.transition("admin", "ghost", Transition.DEACTIVATE)

    @pytest.mark.asyncio
    async def test_unknown_office(self, service, principals):
        """Test a target whose office no longer exists."""
        await principals.save(make_principal("orphan", Role.USER, office_id="office-gone"))

        with pytest.raises(NotFoundError):
            await service.transition("state-ca", "orphan", Transition.DEACTIVATE)

    @pytest.mark.asyncio
    async def test_broken_actor_scope(self, service):
        """Test a malformed actor scope surfaces as a configuration error."""
        with pytest.raises(InvalidConfigurationError):
            await service.transition("broken-admin", "user-la", Transition.DEACTIVATE)

    @pytest.mark.asyncio
    async def test_evaluate_does_not_write(self, service, principals):
        """Test evaluate only decides."""
        decision = await service.evaluate("country-us", "user-la", Transition.DEACTIVATE)

        assert decision.allowed is True
        assert (await principals.get("user-la")).is_active is True

    @pytest.mark.asyncio
    async def test_evaluate_foreign_office(self, service):
        """Test a country admin and an office in another country."""
        decision = await service.evaluate("country-us", "user-tor", Transition.DEACTIVATE)

        assert decision.denial == DenialReason.OUTSIDE_SCOPE

    @pytest.mark.asyncio
    async def test_evaluate_many(self, service):
        """Test bulk evaluation with unknown targets."""
        result = await service.evaluate_many(
            "state-ca", ["user-la", "user-nyc", "ghost", "city-la"], Transition.DEACTIVATE
        )

        assert result.succeeded == ["user-la", "city-la"]
        failed = {f.id: f.reason for f in result.failed}
        assert failed == {
            "ghost": "User not found",
            "user-nyc": "You can only deactivate users within your administrative scope",
        }

    @pytest.mark.asyncio
    async def test_transition_many(self, service, principals):
        """Test bulk deactivation continues past failures."""
        result = await service.transition_many(
            "state-ca", ["user-la", "user-nyc", "state-ny", "user-sf", "ghost"], Transition.DEACTIVATE
        )

        assert [p.id for p in result.succeeded] == ["user-la", "user-sf"]
        assert {f.id for f in result.failed} == {"user-nyc", "state-ny", "ghost"}
        assert (await principals.get("user-la")).is_active is False
        assert (await principals.get("user-nyc")).is_active is True

    @pytest.mark.asyncio
    async def test_transition_many_unknown_actor(self, service):
        """Test a missing actor aborts the whole bulk call."""
        with pytest.raises(NotFoundError):
            await service.transition_many("ghost", ["user-la"], Transition.DEACTIVATE)
