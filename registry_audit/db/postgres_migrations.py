"""PostgreSQL schema creation for the feature record store."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("regaudit.db")

SCHEMA_VERSION = 2

_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version   INTEGER NOT NULL,
        applied   TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS application_features (
        id              TEXT PRIMARY KEY,
        feature_code    TEXT NOT NULL UNIQUE,
        feature_name    TEXT NOT NULL DEFAULT '',
        module_code     TEXT,
        route_path      TEXT,
        description     TEXT,
        source          TEXT,
        created_at      TEXT NOT NULL,
        created_by_name TEXT,
        is_active       BOOLEAN DEFAULT TRUE,
        group_code      TEXT,
        group_name      TEXT,
        display_order   INTEGER
    )
    """,
    "ALTER TABLE application_features ADD COLUMN IF NOT EXISTS review_status TEXT DEFAULT 'pending'",
    "ALTER TABLE application_features ADD COLUMN IF NOT EXISTS reviewed_by TEXT",
    "ALTER TABLE application_features ADD COLUMN IF NOT EXISTS reviewed_at TEXT",
    "ALTER TABLE application_features ADD COLUMN IF NOT EXISTS review_notes TEXT",
    "CREATE INDEX IF NOT EXISTS idx_app_features_module ON application_features(module_code, feature_name)",
    "CREATE INDEX IF NOT EXISTS idx_app_features_route ON application_features(route_path)",
    "CREATE INDEX IF NOT EXISTS idx_app_features_review ON application_features(review_status)",
]


async def run_migrations(pool: asyncpg.Pool) -> None:
    """Create all tables. Idempotent."""
    async with pool.acquire() as conn:
        try:
            current_version = await conn.fetchval("SELECT MAX(version) FROM schema_version") or 0
        except asyncpg.UndefinedTableError:
            current_version = 0

        if current_version >= SCHEMA_VERSION:
            logger.info("Schema is up to date (version %s)", current_version)
            return

        logger.info("Running Postgres migrations: %s → %s", current_version, SCHEMA_VERSION)
        async with conn.transaction():
            for statement in _STATEMENTS:
                await conn.execute(statement)
            await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
        logger.info("Migrations complete — schema version %s", SCHEMA_VERSION)
