import unittest
from datetime import datetime, timedelta, timezone

from registry_audit.date_utils import bucket_timestamp
from registry_audit.models import FeatureRecord, OrphanEntry, Recommendation, RegistryEntry
from registry_audit.services.analysis_settings import AnalysisSettings
from registry_audit.services.orphan_analysis import analyze_orphans
from registry_audit.services.orphan_patterns import (
    detect_migration_batches,
    detect_prefixed_variants,
    strip_prefix,
)


def _entry(code: str, name: str = "", **extra) -> OrphanEntry:
    payload = {
        "id": f"id-{code}",
        "featureCode": code,
        "featureName": name or code,
        "createdAt": extra.pop("createdAt", "2024-03-01T10:00:00Z"),
    }
    payload.update(extra)
    return OrphanEntry(**payload)


class StripPrefixTests(unittest.TestCase):
    def test_longest_known_prefix_wins(self) -> None:
        prefixes = ("ta_", "time_", "time_att_")

        self.assertEqual(strip_prefix("time_att_clock", prefixes), ("clock", "time_att_"))
        self.assertEqual(strip_prefix("time_sheets", prefixes), ("sheets", "time_"))
        self.assertEqual(strip_prefix("sheets", prefixes), ("sheets", ""))

    def test_bare_prefix_is_not_stripped(self) -> None:
        self.assertEqual(strip_prefix("ess_", ("ess_",)), ("ess_", ""))


class PrefixedVariantTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = AnalysisSettings()

    def test_variants_cluster_with_registered_primary(self) -> None:
        registry = [RegistryEntry(featureCode="ess_leave")]
        records = [
            FeatureRecord(id="1", featureCode="ess_leave", featureName="Leave", createdAt="2024-01-01T00:00:00Z"),
            FeatureRecord(id="2", featureCode="admin_leave", featureName="Leave", createdAt="2024-02-01T00:00:00Z"),
            FeatureRecord(id="3", featureCode="mss_leave", featureName="Leave", createdAt="2024-03-01T00:00:00Z"),
        ]

        analysis = analyze_orphans(registry, records, self.settings)

        self.assertEqual([o.featureCode for o in analysis.orphans], ["admin_leave", "mss_leave"])
        self.assertEqual(len(analysis.prefixedVariants), 1)
        cluster = analysis.prefixedVariants[0]
        self.assertEqual(cluster.baseCode, "leave")
        self.assertEqual(cluster.featureName, "Variants of: leave")
        self.assertEqual(cluster.registryCodes, ["ess_leave"])
        self.assertEqual(cluster.suggestedPrimary, "ess_leave")
        self.assertIn("already registered", cluster.mergeRecommendation)
        for orphan in analysis.orphans:
            self.assertEqual(orphan.prefixCluster, "leave")
            self.assertTrue(orphan.hasDuplicate)
            self.assertIn("ess_leave", orphan.duplicateOf)
            self.assertEqual(orphan.recommendation, Recommendation.MERGE)

    def test_unprefixed_code_is_preferred_primary(self) -> None:
        orphans = [_entry("ess_payslips"), _entry("payslips"), _entry("mss_payslips")]

        cluster = detect_prefixed_variants(orphans, [], self.settings)[0]

        self.assertEqual(cluster.suggestedPrimary, "payslips")
        self.assertEqual(cluster.registryCodes, [])

    def test_priority_order_then_earliest_created(self) -> None:
        ranked = [_entry("admin_roster"), _entry("mss_roster")]
        self.assertEqual(detect_prefixed_variants(ranked, [], self.settings)[0].suggestedPrimary, "mss_roster")

        unranked = [
            _entry("hse_incidents", createdAt="2024-05-01T00:00:00Z"),
            _entry("er_incidents", createdAt="2024-01-01T00:00:00Z"),
        ]
        self.assertEqual(
            detect_prefixed_variants(unranked, [], self.settings)[0].suggestedPrimary,
            "er_incidents",
        )

    def test_single_orphan_without_registry_sibling_is_not_a_cluster(self) -> None:
        orphans = [_entry("ess_timesheets"), _entry("payroll_runs")]

        self.assertEqual(detect_prefixed_variants(orphans, [], self.settings), [])


class MigrationBatchTests(unittest.TestCase):
    def test_fifteen_records_in_one_second_form_a_batch_and_are_archived(self) -> None:
        records = [
            FeatureRecord(
                id=str(i),
                featureCode=f"imported_screen_{i:02d}",
                featureName=f"Imported screen {chr(ord('A') + i)}",
                description="Imported from the legacy menu",
                source="auto_migration",
                createdAt="2024-01-01T00:00:00Z",
            )
            for i in range(15)
        ]

        analysis = analyze_orphans([], records, AnalysisSettings(batch_threshold=10))

        self.assertEqual(len(analysis.migrationBatches), 1)
        batch = analysis.migrationBatches[0]
        self.assertEqual(batch.count, 15)
        self.assertEqual(batch.timestamp, "2024-01-01T00:00:00")
        for orphan in analysis.orphans:
            self.assertEqual(orphan.recommendation, Recommendation.ARCHIVE)
            self.assertEqual(orphan.migrationBatch, "2024-01-01T00:00:00")
            self.assertEqual(orphan.recommendationRule, "migration_batch")

    def test_threshold_is_exclusive(self) -> None:
        orphans = [_entry(f"code_{i}") for i in range(10)]

        self.assertEqual(detect_migration_batches(orphans, AnalysisSettings(batch_threshold=10)), [])
        self.assertEqual(len(detect_migration_batches(orphans, AnalysisSettings(batch_threshold=9))), 1)

    def test_granularity_widens_buckets(self) -> None:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        orphans = [_entry(f"code_{i}", createdAt=start + timedelta(seconds=i % 4)) for i in range(12)]

        self.assertEqual(detect_migration_batches(orphans, AnalysisSettings(batch_threshold=10)), [])
        batches = detect_migration_batches(
            orphans, AnalysisSettings(batch_threshold=10, batch_granularity_seconds=60)
        )
        self.assertEqual([batch.count for batch in batches], [12])

    def test_bucket_timestamp_floors_in_utc(self) -> None:
        value = datetime(2024, 1, 1, 2, 30, 59, tzinfo=timezone(timedelta(hours=2)))

        self.assertEqual(bucket_timestamp(value), "2024-01-01T00:30:59")
        self.assertEqual(bucket_timestamp(value, 60), "2024-01-01T00:30:00")


if __name__ == "__main__":
    unittest.main()
