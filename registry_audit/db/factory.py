"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any

import aiosqlite

from registry_audit.db.repositories.feature_records import SqliteFeatureRecordRepository


def get_feature_record_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteFeatureRecordRepository(db)
    from registry_audit.db.repositories.postgres.feature_records import PostgresFeatureRecordRepository
    return PostgresFeatureRecordRepository(db)
