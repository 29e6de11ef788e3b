"""
Unit tests for the Redis entitlement cache.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from service_policy.app.cache import EntitlementCache
from shared.errors import PolicyError


class TestEntitlementCache:
    """Test cases for EntitlementCache."""

    @pytest.fixture
    def cache(self):
        """Create EntitlementCache with a mocked Redis client."""
        cache = EntitlementCache("redis://localhost:6379/0", default_ttl=300)
        cache.redis = MagicMock()
        cache.redis.get = AsyncMock(return_value=None)
        cache.redis.setex = AsyncMock(return_value=True)
        cache.redis.delete = AsyncMock(return_value=1)
        cache.redis.keys = AsyncMock(return_value=[])
        cache.redis.ping = AsyncMock(return_value=True)
        return cache

    @pytest.mark.asyncio
    async def test_get_miss(self, cache):
        """Test a missing key is a miss."""
        assert await cache.get_feature_names("office-la") is None
        cache.redis.get.assert_awaited_once_with("features:office:office-la")

    @pytest.mark.asyncio
    async def test_get_hit(self, cache):
        """Test a cached set is decoded."""
        cache.redis.get.return_value = json.dumps({"features": ["reports", "calendar"]})

        assert await cache.get_feature_names("office-la") == frozenset({"reports", "calendar"})

    @pytest.mark.asyncio
    async def test_get_error_is_miss(self, cache):
        """Test Redis errors are treated as a miss."""
        cache.redis.get.side_effect = ConnectionError("down")

        assert await cache.get_feature_names("office-la") is None

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, cache):
        """Test the TTL passed by the caller is used."""
        assert await cache.set_feature_names("office-la", {"reports"}, 42) is True

        key, ttl, payload = cache.redis.setex.call_args.args
        assert key == "features:office:office-la"
        assert ttl == 42
        assert json.loads(payload)["features"] == ["reports"]

    @pytest.mark.asyncio
    async def test_set_caps_ttl_at_default(self, cache):
        """Test TTLs above the configured default are clamped."""
        await cache.set_feature_names("office-la", {"reports"}, 10_000)

        assert cache.redis.setex.call_args.args[1] == 300

    @pytest.mark.asyncio
    async def test_set_skips_sub_second_ttl(self, cache):
        """Test a grant expiring imminently is not cached."""
        assert await cache.set_feature_names("office-la", {"reports"}, 0) is False
        cache.redis.setex.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_error_returns_false(self, cache):
        """Test write errors are logged and reported."""
        cache.redis.setex.side_effect = ConnectionError("down")

        assert await cache.set_feature_names("office-la", {"reports"}) is False

    @pytest.mark.asyncio
    async def test_invalidate_office(self, cache):
        """Test invalidation deletes the office key."""
        assert await cache.invalidate_office("office-la") is True
        cache.redis.delete.assert_awaited_once_with("features:office:office-la")

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        """Test clearing every office entry."""
        cache.redis.keys.return_value = ["features:office:a", "features:office:b"]

        assert await cache.clear() == 2
        cache.redis.delete.assert_awaited_once_with("features:office:a", "features:office:b")

    @pytest.mark.asyncio
    async def test_health_check(self, cache):
        """Test health check reflects ping."""
        assert await cache.health_check() is True
        cache.redis.ping.side_effect = ConnectionError("down")
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_start_failure(self):
        """Test a failed connection raises a policy error."""
        cache = EntitlementCache("redis://localhost:6379/0")

        with patch('redis.asyncio.from_url') as mock_from_url:
            mock_from_url.return_value.ping = AsyncMock(side_effect=ConnectionError("refused"))

            with pytest.raises(PolicyError) as exc_info:
                await cache.start()

        assert exc_info.value.code == "REDIS_START_FAILED"
