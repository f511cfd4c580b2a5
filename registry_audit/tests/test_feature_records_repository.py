import unittest

import aiosqlite

from registry_audit.db.factory import get_feature_record_repository
from registry_audit.db.repositories.feature_records import SqliteFeatureRecordRepository
from registry_audit.db.repositories.postgres.feature_records import _affected
from registry_audit.db.sqlite_migrations import run_migrations


class FeatureRecordRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repo = SqliteFeatureRecordRepository(self.db)
        await self.repo.upsert(
            {
                "id": "f1",
                "featureCode": "ess_leave",
                "featureName": "Leave",
                "moduleCode": "ess",
                "source": "migration",
                "createdAt": "2024-01-01T00:00:00Z",
            }
        )

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_migrations_are_idempotent(self) -> None:
        await run_migrations(self.db)

        async with self.db.execute("SELECT COUNT(*) FROM schema_version") as cur:
            row = await cur.fetchone()
        self.assertEqual(row[0], 1)

    async def test_new_rows_start_pending(self) -> None:
        row = await self.repo.get_by_id("f1")

        self.assertEqual(row["feature_code"], "ess_leave")
        self.assertEqual(row["review_status"], "pending")
        self.assertEqual(row["created_at"], "2024-01-01T00:00:00Z")

    async def test_upsert_keeps_review_state(self) -> None:
        await self.repo.update_review(
            "f1", review_status="kept", reviewed_by="dana", reviewed_at="2024-06-01T00:00:00+00:00", review_notes=None
        )
        await self.repo.upsert(
            {"id": "f1", "featureCode": "ess_leave", "featureName": "Leave requests", "createdAt": "2024-01-01T00:00:00Z"}
        )

        row = await self.repo.get_by_id("f1")
        self.assertEqual(row["feature_name"], "Leave requests")
        self.assertEqual(row["review_status"], "kept")
        self.assertEqual(row["reviewed_by"], "dana")

    async def test_update_and_delete_report_missing_rows(self) -> None:
        self.assertFalse(
            await self.repo.update_review(
                "nope", review_status="archived", reviewed_by=None, reviewed_at=None, review_notes=None
            )
        )
        self.assertFalse(await self.repo.delete("nope"))
        self.assertTrue(await self.repo.delete("f1"))
        self.assertIsNone(await self.repo.get_by_id("f1"))

    async def test_writes_guarded_by_expected_status(self) -> None:
        await self.repo.update_review(
            "f1", review_status="archived", reviewed_by=None, reviewed_at=None, review_notes=None
        )

        self.assertFalse(
            await self.repo.update_review(
                "f1",
                review_status="kept",
                reviewed_by=None,
                reviewed_at=None,
                review_notes=None,
                expected_status="pending",
            )
        )
        self.assertFalse(await self.repo.delete("f1", expected_status="pending"))
        self.assertEqual((await self.repo.get_by_id("f1"))["review_status"], "archived")
        self.assertTrue(await self.repo.delete("f1", expected_status="archived"))

    async def test_list_all_orders_by_module_and_name(self) -> None:
        await self.repo.upsert({"id": "f2", "featureCode": "jobs", "featureName": "Jobs", "moduleCode": "workforce"})
        await self.repo.upsert({"id": "f3", "featureCode": "ess_payslips", "featureName": "Payslips", "moduleCode": "ess"})

        rows = await self.repo.list_all()

        self.assertEqual([row["id"] for row in rows], ["f1", "f3", "f2"])

    async def test_factory_picks_sqlite_repository(self) -> None:
        self.assertIsInstance(get_feature_record_repository(self.db), SqliteFeatureRecordRepository)


class PostgresCommandTagTests(unittest.TestCase):
    def test_affected_row_count(self) -> None:
        self.assertEqual(_affected("UPDATE 1"), 1)
        self.assertEqual(_affected("DELETE 0"), 0)
        self.assertEqual(_affected(None), 0)


if __name__ == "__main__":
    unittest.main()
