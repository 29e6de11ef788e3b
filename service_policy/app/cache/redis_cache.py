"""
Redis cache of each office's live feature set.
"""

import json
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, Optional

import redis.asyncio as redis

from shared.errors import PolicyError
from shared.logging import get_logger


class EntitlementCache:
    """Caches the set of active feature names per office.

    Callers pass the TTL; the resolver caps it at the earliest upcoming
    grant expiry, so an entry never outlives the grants it was built from.
    Read and write errors are logged and treated as a miss.
    """

    def __init__(self, redis_url: str, default_ttl: int = 300):
        self.redis_url = redis_url
        self.logger = get_logger("policy.cache.redis")
        self.redis: Optional[redis.Redis] = None

        self.default_ttl = default_ttl
        self.min_ttl = 1

        self.FEATURES_PREFIX = "features:office:"

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise PolicyError("REDIS_START_FAILED", str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.close()
            self.logger.info("Redis cache stopped")

    async def get_feature_names(self, office_id: str) -> Optional[FrozenSet[str]]:
        """Get the cached feature set, or None on a miss."""
        try:
            cached_data = await self.redis.get(self._key(office_id))
            if not cached_data:
                return None

            data = json.loads(cached_data)
            self.logger.debug("Cache hit for office features", office_id=office_id)
            return frozenset(data["features"])

        except Exception as e:
            self.logger.error("Error getting cached features", office_id=office_id, error=str(e))
            return None

    async def set_feature_names(
        self,
        office_id: str,
        names: Iterable[str],
        ttl_seconds: Optional[int] = None
    ) -> bool:
        """Cache an office's feature set.

        A TTL below one second is not cached at all.
        """
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl
        ttl_seconds = min(self.default_ttl, int(ttl_seconds))
        if ttl_seconds < self.min_ttl:
            return False

        try:
            data = {
                "features": sorted(names),
                "cached_at": datetime.now(timezone.utc).isoformat()
            }
            await self.redis.setex(self._key(office_id), ttl_seconds, json.dumps(data))

            self.logger.debug("Cached office features", office_id=office_id, ttl=ttl_seconds)
            return True

        except Exception as e:
            self.logger.error("Error caching features", office_id=office_id, error=str(e))
            return False

    async def invalidate_office(self, office_id: str) -> bool:
        """Drop the cached feature set for an office."""
        try:
            await self.redis.delete(self._key(office_id))
            self.logger.info("Invalidated office features", office_id=office_id)
            return True

        except Exception as e:
            self.logger.error("Error invalidating office features", office_id=office_id, error=str(e))
            return False

    async def clear(self) -> int:
        """Drop every cached feature set."""
        try:
            keys = await self.redis.keys(f"{self.FEATURES_PREFIX}*")
            if keys:
                await self.redis.delete(*keys)
            self.logger.info("Cache cleared", count=len(keys))
            return len(keys)

        except Exception as e:
            self.logger.error("Error clearing cache", error=str(e))
            return 0

    def _key(self, office_id: str) -> str:
        return f"{self.FEATURES_PREFIX}{office_id}"

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
