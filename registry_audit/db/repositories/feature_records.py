"""SQLite implementation of FeatureRecordRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

_UPSERT_SQL = """
    INSERT INTO application_features (
        id, feature_code, feature_name, module_code, route_path,
        description, source, created_at, created_by_name, is_active,
        group_code, group_name, display_order,
        review_status, reviewed_by, reviewed_at, review_notes
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        feature_code=excluded.feature_code,
        feature_name=excluded.feature_name,
        module_code=excluded.module_code,
        route_path=excluded.route_path,
        description=excluded.description,
        source=excluded.source,
        created_by_name=excluded.created_by_name,
        is_active=excluded.is_active,
        group_code=excluded.group_code,
        group_name=excluded.group_name,
        display_order=excluded.display_order
"""


def upsert_params(record: dict) -> tuple:
    """Positional parameters for an upsert, from a camelCase record dict."""
    now = datetime.now(timezone.utc).isoformat()
    created_at = record.get("createdAt") or now
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat()
    reviewed_at = record.get("reviewedAt")
    if isinstance(reviewed_at, datetime):
        reviewed_at = reviewed_at.isoformat()
    source = record.get("source")
    return (
        record["id"],
        record["featureCode"],
        record.get("featureName", ""),
        record.get("moduleCode"),
        record.get("routePath"),
        record.get("description"),
        getattr(source, "value", source),
        created_at,
        record.get("createdByName"),
        bool(record.get("isActive", True)),
        record.get("groupCode"),
        record.get("groupName"),
        record.get("displayOrder"),
        getattr(record.get("reviewStatus"), "value", record.get("reviewStatus")) or "pending",
        record.get("reviewedBy"),
        reviewed_at,
        record.get("reviewNotes"),
    )


class SqliteFeatureRecordRepository:
    """SQLite-backed storage for ``application_features`` rows."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, record: dict) -> None:
        await self.db.execute(_UPSERT_SQL, upsert_params(record))
        await self.db.commit()

    async def get_by_id(self, record_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM application_features WHERE id = ?", (record_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM application_features ORDER BY module_code, feature_name"
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def update_review(
        self,
        record_id: str,
        *,
        review_status: str,
        reviewed_by: str | None,
        reviewed_at: str | None,
        review_notes: str | None,
        expected_status: str | None = None,
    ) -> bool:
        """Returns False when the row is missing or no longer holds ``expected_status``."""
        query = """UPDATE application_features
               SET review_status = ?, reviewed_by = ?, reviewed_at = ?, review_notes = ?
               WHERE id = ?"""
        params: tuple = (review_status, reviewed_by, reviewed_at, review_notes, record_id)
        if expected_status is not None:
            query += " AND COALESCE(review_status, 'pending') = ?"
            params += (expected_status,)
        cur = await self.db.execute(query, params)
        await self.db.commit()
        return cur.rowcount > 0

    async def delete(self, record_id: str, expected_status: str | None = None) -> bool:
        query = "DELETE FROM application_features WHERE id = ?"
        params: tuple = (record_id,)
        if expected_status is not None:
            query += " AND COALESCE(review_status, 'pending') = ?"
            params += (expected_status,)
        cur = await self.db.execute(query, params)
        await self.db.commit()
        return cur.rowcount > 0
