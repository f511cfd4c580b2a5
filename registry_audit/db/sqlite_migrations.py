"""Database schema creation and versioning.

All CREATE TABLE statements for the feature record store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("regaudit.db")

SCHEMA_VERSION = 2

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Feature records (database side of the registry reconciliation) ─
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
    is_active       INTEGER DEFAULT 1,
    group_code      TEXT,
    group_name      TEXT,
    display_order   INTEGER
);

CREATE INDEX IF NOT EXISTS idx_app_features_module ON application_features(module_code, feature_name);
CREATE INDEX IF NOT EXISTS idx_app_features_route ON application_features(route_path);
"""


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return any(row[1] == column for row in rows)


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, definition: str) -> None:
    if await _column_exists(db, table, column):
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


async def _ensure_index(db: aiosqlite.Connection, ddl: str) -> None:
    await db.execute(ddl)


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.Error:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s → %s", current_version, SCHEMA_VERSION)

    await db.executescript(_TABLES)

    # Review metadata (version 2).
    await _ensure_column(db, "application_features", "review_status", "TEXT DEFAULT 'pending'")
    await _ensure_column(db, "application_features", "reviewed_by", "TEXT")
    await _ensure_column(db, "application_features", "reviewed_at", "TEXT")
    await _ensure_column(db, "application_features", "review_notes", "TEXT")
    await _ensure_index(
        db,
        "CREATE INDEX IF NOT EXISTS idx_app_features_review ON application_features(review_status)",
    )

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete — schema version %s", SCHEMA_VERSION)
