"""
Periodic deactivation of expired grants.

Resolution already treats a grant past ``expires_at`` as inactive; the
sweep brings the stored flag in line with that.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import utc_now


class ExpirationSweeper:
    """Flips expired grants to inactive, on demand or on an interval."""

    def __init__(
        self,
        grant_store,
        clock: Callable[[], datetime] = utc_now,
        interval_seconds: float = 3600,
        metrics: Optional[MetricsCollector] = None
    ):
        self.grant_store = grant_store
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.logger = get_logger("policy.expiration")
        self._task: Optional[asyncio.Task] = None

    async def sweep_expired(self) -> int:
        """Deactivate grants past their expiry; returns how many changed."""
        count = await self.grant_store.deactivate_expired(self.clock())

        if count:
            self.logger.info("Deactivated expired grants", count=count)
            if self.metrics:
                self.metrics.record_grants_expired(count)
        else:
            self.logger.debug("No expired grants found")
        return count

    async def grant_stats(self) -> Dict[str, int]:
        stats = await self.grant_store.grant_stats(self.clock())
        self.logger.info("Grant statistics", **stats)
        return stats

    async def start(self):
        """Start the background sweep loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            self.logger.info("Expiration sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the background sweep loop."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            self.logger.info("Expiration sweeper stopped")

    async def _run(self):
        while True:
            try:
                await self.sweep_expired()
            except Exception as e:
                self.logger.error("Expiration sweep failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)
