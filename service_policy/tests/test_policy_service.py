"""
Unit tests for the policy service routes.
"""

import pytest
from fastapi.testclient import TestClient

from service_policy.app.main import PolicyService, PolicyStores, create_app
from shared.config import get_config
from shared.test_helpers import FixedClock, PolicyDataFactory


class EchoHandler:
    async def execute(self, office_id, payload):
        return {"office_id": office_id, "echo": payload}


@pytest.fixture
def config():
    """Service configuration with the mock verifier and no background sweep."""
    return get_config(
        "policy", 8020,
        use_mock_token_verifier=True,
        enable_expiration_sweeper=False
    )


@pytest.fixture
def service(config):
    """Create PolicyService over in-memory stores."""
    return PolicyService(
        config=config,
        stores=PolicyStores(**PolicyDataFactory.create_stores()),
        handlers={"reports": EchoHandler(), "analytics": EchoHandler()},
        clock=FixedClock()
    )


@pytest.fixture
def client(service):
    """Create test client."""
    return TestClient(service.app)


class TestPolicyServiceBasics:
    """Test cases for common endpoints."""

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "policy"

    def test_health_endpoint(self, client):
        """Test health check without external dependencies."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {}

    def test_request_id_echoed(self, client):
        """Test the correlation header is returned."""
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_health_degraded(self, service, client):
        """Test a failing dependency degrades health."""
        async def failing_dependencies():
            return {"redis": "error"}

        service._check_dependencies = failing_dependencies

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_metrics_endpoint(self, client):
        """Test Prometheus exposition includes policy metrics."""
        client.get("/offices/office-la/features/reports")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "entitlement_checks_total" in response.text

    def test_startup_and_shutdown(self, config):
        """Test lifecycle hooks with handlers that match the catalog."""
        app = create_app(
            config=config,
            stores=PolicyStores(**PolicyDataFactory.create_stores()),
            handlers={"reports": EchoHandler()}
        )

        with TestClient(app) as client:
            assert client.get("/").status_code == 200


class TestAuthorizationRoutes:
    """Test cases for administrative authorization routes."""

    def test_authorize_allowed(self, client):
        """Test a state admin acting inside its state."""
        response = client.post("/policy/authorize", json={
            "actor_id": "state-ca", "target_id": "user-sf", "transition": "deactivate"
        })

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "reason": None, "denial": None}

    def test_authorize_denied(self, client):
        """Test a state admin acting outside its state."""
        response = client.post("/policy/authorize", json={
            "actor_id": "state-ca", "target_id": "user-nyc", "transition": "deactivate"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["denial"] == "outside_scope"
        assert data["reason"] == "You can only deactivate users within your administrative scope"

    def test_authorize_broken_scope(self, client):
        """Test a malformed actor scope is reported as a configuration error."""
        response = client.post("/policy/authorize", json={
            "actor_id": "broken-admin", "target_id": "user-la", "transition": "activate"
        })

        assert response.status_code == 500
        assert response.json()["code"] == "INVALID_CONFIGURATION"

    def test_authorize_unknown_actor(self, client):
        """Test unknown actor."""
        response = client.post("/policy/authorize", json={
            "actor_id": "ghost", "target_id": "user-la", "transition": "activate"
        })

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_authorize_bad_transition(self, client):
        """Test request validation."""
        response = client.post("/policy/authorize", json={
            "actor_id": "admin", "target_id": "user-la", "transition": "delete"
        })

        assert response.status_code == 422

    def test_authorize_bulk(self, client):
        """Test bulk authorization partitions targets."""
        response = client.post("/policy/authorize/bulk", json={
            "actor_id": "country-us",
            "target_ids": ["user-la", "user-tor", "state-ny", "ghost"],
            "transition": "deactivate"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == ["user-la", "state-ny"]
        assert {f["id"] for f in data["failed"]} == {"user-tor", "ghost"}

    def test_transition_user(self, client):
        """Test deactivating then re-activating a user."""
        response = client.post("/policy/users/user-sf/deactivate", json={"actor_id": "state-ca"})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.post("/policy/users/user-sf/activate", json={"actor_id": "city-sf"})
        assert response.status_code == 200
        assert response.json()["is_active"] is True

    def test_transition_user_forbidden(self, client):
        """Test a manager cannot deactivate users."""
        response = client.post("/policy/users/user-la/deactivate", json={"actor_id": "manager-la"})

        assert response.status_code == 403
        assert response.json()["message"] == "Only administrators can deactivate users"

    def test_transition_users_bulk(self, client):
        """Test bulk deactivation."""
        response = client.post("/policy/users/bulk/deactivate", json={
            "actor_id": "state-ca", "target_ids": ["user-la", "user-nyc"]
        })

        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["succeeded"]] == ["user-la"]
        assert data["failed"][0]["id"] == "user-nyc"

    @pytest.mark.parametrize("actor_role,target_role,allowed", [
        ("ADMIN", "COUNTRY_ADMIN", True),
        ("STATE_ADMIN", "CITY_ADMIN", True),
        ("STATE_ADMIN", "STATE_ADMIN", False),
        ("MANAGER", "CITY_ADMIN", False),
    ])
    def test_can_assign(self, client, actor_role, target_role, allowed):
        """Test the assignment table lookup."""
        response = client.get(
            "/policy/assignments/can-assign",
            params={"actor_role": actor_role, "target_role": target_role}
        )

        assert response.status_code == 200
        assert response.json() == {"allowed": allowed}

    def test_can_assign_unknown_role(self, client):
        response = client.get(
            "/policy/assignments/can-assign",
            params={"actor_role": "OWNER", "target_role": "USER"}
        )

        assert response.status_code == 422

    def test_admin_lifecycle(self, client):
        """Test assigning, listing and removing a city admin."""
        response = client.post("/policy/admins", json={
            "actor_id": "state-ca", "target_id": "user-sf", "role": "CITY_ADMIN", "location_id": "SF"
        })
        assert response.status_code == 200
        assert response.json()["role"] == "CITY_ADMIN"

        response = client.get("/policy/admins", params={"actor_id": "state-ca"})
        assert response.status_code == 200
        assert "user-sf" in {a["id"] for a in response.json()["admins"]}

        response = client.delete("/policy/admins/user-sf", params={"actor_id": "state-ca"})
        assert response.status_code == 200
        assert response.json()["role"] == "USER"
        assert response.json()["scope"] is None

    def test_assign_outside_scope(self, client):
        """Test assigning a city outside the actor's state."""
        response = client.post("/policy/admins", json={
            "actor_id": "state-ca", "target_id": "user-nyc", "role": "CITY_ADMIN", "location_id": "NYC"
        })

        assert response.status_code == 403


class TestEntitlementRoutes:
    """Test cases for office entitlement routes."""

    def test_list_features(self, client):
        """Test the free group's active features."""
        response = client.get("/offices/office-la/features")

        assert response.status_code == 200
        assert response.json() == {"office_id": "office-la", "features": ["calendar", "reports"]}

    def test_check_feature(self, client):
        response = client.get("/offices/office-la/features/analytics")

        assert response.status_code == 200
        assert response.json() == {"office_id": "office-la", "feature": "analytics", "active": False}

    def test_check_features(self, client):
        """Test batch checks."""
        response = client.post("/offices/office-la/features/check", json={"features": ["reports", "sms_alerts"]})

        assert response.status_code == 200
        assert response.json()["results"] == {"reports": True, "sms_alerts": False}

    def test_unknown_office(self, client):
        response = client.get("/offices/office-gone/features")

        assert response.status_code == 404

    def test_activate_paid_group(self, client):
        """Test activating a paid group and the conflict on repeat."""
        response = client.post(
            "/offices/office-la/feature-groups/g-premium/activate",
            json={"actor_id": "admin", "token_name": "valid123"}
        )
        assert response.status_code == 200
        grant = response.json()
        assert grant["is_active"] is True
        assert grant["expires_at"] == "2025-02-14T12:00:00+00:00"

        assert client.get("/offices/office-la/features/analytics").json()["active"] is True

        response = client.post(
            "/offices/office-la/feature-groups/g-premium/activate",
            json={"actor_id": "admin", "token_name": "valid123"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_activate_rejected_token(self, client):
        """Test a token the verifier rejects."""
        response = client.post(
            "/offices/office-la/feature-groups/g-premium/activate",
            json={"actor_id": "admin", "token_name": "premium-unlisted"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VERIFICATION_FAILED"

    def test_activate_missing_token(self, client):
        response = client.post(
            "/offices/office-la/feature-groups/g-premium/activate",
            json={"actor_id": "admin"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_feature_groups(self, client):
        """Test the per-group listing."""
        response = client.get("/offices/office-la/feature-groups")

        assert response.status_code == 200
        groups = {g["id"]: g["granted"] for g in response.json()["feature_groups"]}
        assert groups == {"g-basic": True, "g-premium": False, "g-messaging": False}

    def test_execute_feature(self, client):
        """Test dispatching to a handler for an active feature."""
        response = client.post("/offices/office-la/features/reports/execute", json={"payload": {"q": 1}})

        assert response.status_code == 200
        assert response.json()["result"] == {"office_id": "office-la", "echo": {"q": 1}}

    def test_execute_inactive_feature(self, client):
        response = client.post("/offices/office-la/features/analytics/execute", json={})

        assert response.status_code == 403
        assert response.json()["message"] == "Feature 'analytics' is not available for this office"

    def test_sweep_and_stats(self, client):
        """Test the manual sweep and grant statistics."""
        response = client.post("/policy/grants/sweep")
        assert response.status_code == 200
        assert response.json() == {"deactivated": 0}

        response = client.get("/policy/grants/stats")
        assert response.status_code == 200
        assert response.json()["total_grants"] == 0
