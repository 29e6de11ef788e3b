"""
Unit tests for the expiration sweep.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_policy.app.entitlements.expiration import ExpirationSweeper
from service_policy.app.persistence import InMemoryGrantStore
from shared.metrics import MetricsCollector
from shared.test_helpers import NOW, FixedClock, make_grant


class TestExpirationSweeper:
    """Test cases for ExpirationSweeper."""

    @pytest.fixture
    def grants(self):
        return InMemoryGrantStore([
            make_grant("office-la", "g-premium", expires_at=NOW - timedelta(hours=1)),
            make_grant("office-sf", "g-premium", expires_at=NOW - timedelta(days=3)),
            make_grant("office-nyc", "g-premium", expires_at=NOW + timedelta(days=3)),
            make_grant("office-tor", "g-messaging"),
            make_grant("office-tor", "g-premium", is_active=False, expires_at=NOW - timedelta(days=9)),
        ])

    @pytest.fixture
    def sweeper(self, grants):
        """Create ExpirationSweeper with a fixed clock."""
        return ExpirationSweeper(grants, clock=FixedClock())

    @pytest.mark.asyncio
    async def test_sweep_deactivates_expired(self, sweeper, grants):
        """Test only active grants past expiry are flipped."""
        assert await sweeper.sweep_expired() == 2

        assert (await grants.get_grant("office-la", "g-premium")).is_active is False
        assert (await grants.get_grant("office-nyc", "g-premium")).is_active is True
        assert (await grants.get_grant("office-tor", "g-messaging")).is_active is True

    @pytest.mark.asyncio
    async def test_second_sweep_returns_zero(self, sweeper):
        """Test the sweep is idempotent."""
        await sweeper.sweep_expired()

        assert await sweeper.sweep_expired() == 0

    @pytest.mark.asyncio
    async def test_grant_stats(self, sweeper):
        """Test grant counts before and after a sweep."""
        before = await sweeper.grant_stats()
        await sweeper.sweep_expired()
        after = await sweeper.grant_stats()

        assert before == {"total_grants": 5, "live_grants": 2, "expired_unswept": 2, "inactive_grants": 1}
        assert after == {"total_grants": 5, "live_grants": 2, "expired_unswept": 0, "inactive_grants": 3}

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, grants):
        """Test expired grants are counted."""
        metrics = MetricsCollector("policy")
        sweeper = ExpirationSweeper(grants, clock=FixedClock(), metrics=metrics)

        await sweeper.sweep_expired()

        assert metrics.registry.get_sample_value("grants_expired_total") == 2.0

    @pytest.mark.asyncio
    async def test_background_loop_survives_errors(self):
        """Test the loop logs a failing sweep and keeps running."""
        calls = []

        async def deactivate_expired(now):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("db down")
            return 0

        store = MagicMock()
        store.deactivate_expired = AsyncMock(side_effect=deactivate_expired)
        sweeper = ExpirationSweeper(store, clock=FixedClock(), interval_seconds=0.01)

        await sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert store.deactivate_expired.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self, sweeper):
        """Test stopping an idle sweeper."""
        await sweeper.stop()
