"""
PostgreSQL persistence layer for the catalog and grants.
"""

from datetime import datetime
from typing import Dict, List, Optional

import asyncpg

from shared.errors import ConflictError, PolicyError
from shared.logging import get_logger
from ..entitlements.models import (
    Feature,
    FeatureCatalog,
    FeatureGroup,
    Grant,
    TokenConfiguration,
)


class PostgreSQLPersistence:
    """Catalog and grant store backed by asyncpg."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("policy.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PolicyError("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS features (
                    id VARCHAR(255) PRIMARY KEY,
                    name VARCHAR(255) NOT NULL UNIQUE,
                    description TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS feature_groups (
                    id VARCHAR(255) PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    app_name VARCHAR(255),
                    description TEXT,
                    is_paid BOOLEAN NOT NULL DEFAULT FALSE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS feature_group_features (
                    feature_group_id VARCHAR(255) NOT NULL REFERENCES feature_groups(id),
                    feature_id VARCHAR(255) NOT NULL REFERENCES features(id),
                    PRIMARY KEY (feature_group_id, feature_id)
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS token_configurations (
                    id VARCHAR(255) PRIMARY KEY,
                    token_name VARCHAR(255) NOT NULL UNIQUE,
                    feature_group_id VARCHAR(255) NOT NULL REFERENCES feature_groups(id),
                    expires_in_days INTEGER,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS office_feature_groups (
                    id VARCHAR(255) PRIMARY KEY,
                    office_id VARCHAR(255) NOT NULL,
                    feature_group_id VARCHAR(255) NOT NULL REFERENCES feature_groups(id),
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    expires_at TIMESTAMP WITH TIME ZONE,
                    activated_at TIMESTAMP WITH TIME ZONE,
                    token_id VARCHAR(255) REFERENCES token_configurations(id),
                    UNIQUE (office_id, feature_group_id)
                );
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ofg_office ON office_feature_groups(office_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ofg_expiry ON office_feature_groups(expires_at)
                WHERE is_active = TRUE;
            """)

    async def catalog(self) -> FeatureCatalog:
        """Load all features and feature groups."""
        try:
            async with self.pool.acquire() as conn:
                feature_rows = await conn.fetch("SELECT * FROM features")
                group_rows = await conn.fetch("""
                    SELECT g.*, COALESCE(
                        array_agg(m.feature_id) FILTER (WHERE m.feature_id IS NOT NULL), '{}'
                    ) AS feature_ids
                    FROM feature_groups g
                    LEFT JOIN feature_group_features m ON m.feature_group_id = g.id
                    GROUP BY g.id
                """)

                return FeatureCatalog.build(
                    (self._row_to_feature(row) for row in feature_rows),
                    (self._row_to_group(row) for row in group_rows)
                )

        except Exception as e:
            self.logger.error("Error loading catalog", error=str(e))
            raise

    async def get_feature_group(self, group_id: str) -> Optional[FeatureGroup]:
        """Load a feature group with its member feature ids."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT g.*, COALESCE(
                    array_agg(m.feature_id) FILTER (WHERE m.feature_id IS NOT NULL), '{}'
                ) AS feature_ids
                FROM feature_groups g
                LEFT JOIN feature_group_features m ON m.feature_group_id = g.id
                WHERE g.id = $1
                GROUP BY g.id
            """, group_id)

            return self._row_to_group(row) if row else None

    async def get_token_by_name(self, token_name: str) -> Optional[TokenConfiguration]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM token_configurations WHERE token_name = $1
            """, token_name)

            if not row:
                return None

            return TokenConfiguration(
                id=row['id'],
                token_name=row['token_name'],
                feature_group_id=row['feature_group_id'],
                expires_in_days=row['expires_in_days'],
                is_active=row['is_active']
            )

    async def grants_for_office(self, office_id: str) -> List[Grant]:
        """Load every grant row for an office, live or not."""
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT * FROM office_feature_groups WHERE office_id = $1
                """, office_id)

                return [self._row_to_grant(row) for row in rows]

        except Exception as e:
            self.logger.error("Error loading grants", office_id=office_id, error=str(e))
            raise

    async def get_grant(self, office_id: str, feature_group_id: str) -> Optional[Grant]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM office_feature_groups
                WHERE office_id = $1 AND feature_group_id = $2
            """, office_id, feature_group_id)

            return self._row_to_grant(row) if row else None

    async def upsert_activation(self, grant: Grant, now: datetime) -> Grant:
        """Insert or overwrite the (office, group) row unless it is live.

        The WHERE clause on the conflict branch makes this a single
        compare-and-swap; a live row yields no returned row.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO office_feature_groups (
                    id, office_id, feature_group_id, is_active, expires_at, activated_at, token_id
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (office_id, feature_group_id) DO UPDATE SET
                    is_active = EXCLUDED.is_active,
                    expires_at = EXCLUDED.expires_at,
                    activated_at = EXCLUDED.activated_at,
                    token_id = EXCLUDED.token_id
                WHERE NOT (
                    office_feature_groups.is_active
                    AND (office_feature_groups.expires_at IS NULL OR office_feature_groups.expires_at > $8)
                )
                RETURNING *
            """,
                grant.id, grant.office_id, grant.feature_group_id, grant.is_active,
                grant.expires_at, grant.activated_at, grant.token_id, now
            )

        if row is None:
            raise ConflictError(
                "Feature group is already active for this office",
                details={"office_id": grant.office_id, "feature_group_id": grant.feature_group_id}
            )

        self.logger.info(
            "Grant activated",
            office_id=grant.office_id,
            feature_group_id=grant.feature_group_id
        )
        return self._row_to_grant(row)

    async def deactivate_expired(self, now: datetime) -> int:
        """Flip is_active off on grants past their expiry."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE office_feature_groups
                SET is_active = FALSE
                WHERE is_active = TRUE AND expires_at IS NOT NULL AND expires_at < $1
            """, now)

        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1])

    async def grant_stats(self, now: datetime) -> Dict[str, int]:
        """Get grant statistics."""
        try:
            async with self.pool.acquire() as conn:
                stats = await conn.fetchrow("""
                    SELECT
                        COUNT(*) AS total_grants,
                        COUNT(*) FILTER (
                            WHERE is_active AND (expires_at IS NULL OR expires_at > $1)
                        ) AS live_grants,
                        COUNT(*) FILTER (
                            WHERE is_active AND expires_at IS NOT NULL AND expires_at <= $1
                        ) AS expired_unswept,
                        COUNT(*) FILTER (WHERE NOT is_active) AS inactive_grants
                    FROM office_feature_groups
                """, now)

                return dict(stats)

        except Exception as e:
            self.logger.error("Error getting grant stats", error=str(e))
            return {}

    def _row_to_feature(self, row) -> Feature:
        return Feature(
            id=row['id'],
            name=row['name'],
            is_active=row['is_active'],
            description=row['description']
        )

    def _row_to_group(self, row) -> FeatureGroup:
        return FeatureGroup(
            id=row['id'],
            name=row['name'],
            app_name=row['app_name'],
            is_paid=row['is_paid'],
            feature_ids=frozenset(row['feature_ids']),
            description=row['description']
        )

    def _row_to_grant(self, row) -> Grant:
        """Convert database row to Grant object."""
        return Grant(
            id=row['id'],
            office_id=row['office_id'],
            feature_group_id=row['feature_group_id'],
            is_active=row['is_active'],
            expires_at=row['expires_at'],
            activated_at=row['activated_at'],
            token_id=row['token_id']
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
