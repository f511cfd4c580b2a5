"""PostgreSQL implementation of FeatureRecordRepository."""
from __future__ import annotations

import asyncpg

from registry_audit.db.repositories.feature_records import upsert_params


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 1" / "DELETE 0".
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresFeatureRecordRepository:
    """PostgreSQL-backed storage for ``application_features`` rows."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def upsert(self, record: dict) -> None:
        query = """
            INSERT INTO application_features (
                id, feature_code, feature_name, module_code, route_path,
                description, source, created_at, created_by_name, is_active,
                group_code, group_name, display_order,
                review_status, reviewed_by, reviewed_at, review_notes
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
            ON CONFLICT(id) DO UPDATE SET
                feature_code=EXCLUDED.feature_code,
                feature_name=EXCLUDED.feature_name,
                module_code=EXCLUDED.module_code,
                route_path=EXCLUDED.route_path,
                description=EXCLUDED.description,
                source=EXCLUDED.source,
                created_by_name=EXCLUDED.created_by_name,
                is_active=EXCLUDED.is_active,
                group_code=EXCLUDED.group_code,
                group_name=EXCLUDED.group_name,
                display_order=EXCLUDED.display_order
        """
        await self.db.execute(query, *upsert_params(record))

    async def get_by_id(self, record_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM application_features WHERE id = $1", record_id)
        return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        rows = await self.db.fetch("SELECT * FROM application_features ORDER BY module_code, feature_name")
        return [dict(r) for r in rows]

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
        status = await self.db.execute(
            """UPDATE application_features
               SET review_status = $1, reviewed_by = $2, reviewed_at = $3, review_notes = $4
               WHERE id = $5
                 AND ($6::text IS NULL OR COALESCE(review_status, 'pending') = $6)""",
            review_status, reviewed_by, reviewed_at, review_notes, record_id, expected_status,
        )
        return _affected(status) > 0

    async def delete(self, record_id: str, expected_status: str | None = None) -> bool:
        status = await self.db.execute(
            """DELETE FROM application_features
               WHERE id = $1 AND ($2::text IS NULL OR COALESCE(review_status, 'pending') = $2)""",
            record_id, expected_status,
        )
        return _affected(status) > 0
