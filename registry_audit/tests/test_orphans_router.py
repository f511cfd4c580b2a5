import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

import aiosqlite
from fastapi import HTTPException

from registry_audit import config
from registry_audit.db.repositories.feature_records import SqliteFeatureRecordRepository
from registry_audit.db.sqlite_migrations import run_migrations
from registry_audit.routers import orphans as orphans_router

_REGISTRY_YAML = """
modules:
  - code: workforce
    groups:
      - code: core
        features:
          - code: jobs
            name: Jobs
            routePath: /workforce/jobs
"""


class _BrokenRepository:
    async def list_all(self):
        raise RuntimeError("connection refused")


class OrphansRouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.registry_path = Path(self.tmp.name) / "registry.yaml"
        self.registry_path.write_text(_REGISTRY_YAML, encoding="utf-8")

        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repo = SqliteFeatureRecordRepository(self.db)
        for record in (
            {"id": "1", "featureCode": "jobs", "featureName": "Jobs", "moduleCode": "workforce"},
            {"id": "2", "featureCode": "job_board", "featureName": "Job Board", "moduleCode": "workforce",
             "routePath": "/workforce/board", "description": "Public job board"},
            {"id": "3", "featureCode": "stub_screen", "featureName": "Stub Screen"},
        ):
            await self.repo.upsert({**record, "createdAt": "2024-02-01T09:00:00Z"})

        self.patches = [
            patch.object(orphans_router, "_repository", AsyncMock(return_value=self.repo)),
            patch.object(config, "REGISTRY_PATH", self.registry_path),
        ]
        for patcher in self.patches:
            patcher.start()

    async def asyncTearDown(self) -> None:
        for patcher in reversed(self.patches):
            patcher.stop()
        await self.db.close()
        self.tmp.cleanup()

    async def test_analysis_payload(self) -> None:
        payload = await orphans_router.get_orphan_analysis(batch_threshold=None)

        self.assertEqual([o["featureCode"] for o in payload["orphans"]], ["stub_screen", "job_board"])
        self.assertEqual(payload["stats"]["syncedCount"], 1)
        self.assertEqual(payload["stats"]["registryCandidates"], 1)
        self.assertEqual(payload["registryCandidates"][0]["featureCode"], "job_board")

    async def test_grouped_views(self) -> None:
        by_module = await orphans_router.get_orphans_by_module()
        by_source = await orphans_router.get_orphans_by_source()

        self.assertEqual({group["moduleCode"] for group in by_module}, {"workforce", "unassigned"})
        self.assertEqual(by_source[0]["source"], "unknown")
        self.assertEqual(by_source[0]["count"], 2)

    async def test_export_returns_csv(self) -> None:
        response = await orphans_router.export_orphans_csv()

        self.assertEqual(response.media_type, "text/csv")
        lines = response.body.decode("utf-8").splitlines()
        self.assertEqual(lines[0], "featureCode,featureName,moduleCode,routePath,source,recommendation,recommendationReason")
        self.assertEqual(len(lines), 3)

    async def test_single_action_returns_fresh_analysis(self) -> None:
        payload = await orphans_router.archive_orphan("3", orphans_router.ReviewRequest(reviewer="dana"))

        self.assertTrue(payload["result"]["success"])
        self.assertEqual(payload["result"]["reviewStatus"], "archived")
        self.assertEqual([e["featureCode"] for e in payload["analysis"]["archivedEntries"]], ["stub_screen"])

    async def test_keep_and_undo_keep(self) -> None:
        await orphans_router.keep_orphan("2", orphans_router.ReviewRequest(notes="roadmap"))
        payload = await orphans_router.undo_keep_orphan("2", None)

        self.assertEqual(payload["result"]["reviewStatus"], "pending")
        self.assertEqual(payload["analysis"]["keptEntries"], [])

    async def test_delete_removes_orphan(self) -> None:
        payload = await orphans_router.delete_orphan("3", reviewer="dana")

        self.assertEqual([o["featureCode"] for o in payload["analysis"]["orphans"]], ["job_board"])

    async def test_missing_record_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await orphans_router.archive_orphan("nope", None)

        self.assertEqual(ctx.exception.status_code, 404)

    async def test_illegal_transition_is_409(self) -> None:
        await orphans_router.archive_orphan("3", None)

        with self.assertRaises(HTTPException) as ctx:
            await orphans_router.keep_orphan("3", None)

        self.assertEqual(ctx.exception.status_code, 409)

    async def test_bulk_archive_reports_summary(self) -> None:
        payload = await orphans_router.bulk_archive(
            orphans_router.BulkReviewRequest(ids=["2", "3", "missing"], reviewer="dana")
        )

        self.assertEqual(payload["summary"], {"requested": 3, "succeeded": 2, "failed": 1})
        self.assertEqual(payload["analysis"]["stats"]["byReviewStatus"]["archived"], 2)

    async def test_bulk_without_ids_is_400(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await orphans_router.bulk_keep(orphans_router.BulkReviewRequest(ids=[]))

        self.assertEqual(ctx.exception.status_code, 400)

    async def test_bulk_delete_without_confirmation_is_400(self) -> None:
        with patch.object(config, "BULK_DELETE_CONFIRM_THRESHOLD", 1):
            with self.assertRaises(HTTPException) as ctx:
                await orphans_router.bulk_delete(orphans_router.BulkDeleteRequest(ids=["2", "3"]))

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("DELETE 2", ctx.exception.detail)

    async def test_store_failure_is_503(self) -> None:
        with patch.object(orphans_router, "_repository", AsyncMock(return_value=_BrokenRepository())):
            with self.assertRaises(HTTPException) as ctx:
                await orphans_router.get_orphan_analysis(batch_threshold=None)

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIn("feature_store", ctx.exception.detail)

    async def test_missing_registry_is_503(self) -> None:
        with patch.object(config, "REGISTRY_PATH", Path(self.tmp.name) / "absent.yaml"):
            with self.assertRaises(HTTPException) as ctx:
                await orphans_router.get_orphan_analysis(batch_threshold=None)

        self.assertEqual(ctx.exception.status_code, 503)


if __name__ == "__main__":
    unittest.main()
