import unittest

from registry_audit.models import FeatureRecord, OrphanEntry, Recommendation
from registry_audit.services.analysis_settings import (
    RULE_INCOMPLETE,
    RULE_MIGRATION_BATCH,
    AnalysisSettings,
)
from registry_audit.services.orphan_analysis import analyze_orphans
from registry_audit.services.orphan_recommendations import (
    REASON_COMPLETE_UNIQUE,
    REASON_DEFAULT,
    REASON_INCOMPLETE,
    ClassificationContext,
    MergeClusterRef,
    classify_orphan,
    select_registry_candidates,
)


def _entry(code: str, **extra) -> OrphanEntry:
    payload = {
        "id": f"id-{code}",
        "featureCode": code,
        "featureName": extra.pop("featureName", code),
        "createdAt": "2024-03-01T10:00:00Z",
    }
    payload.update(extra)
    return OrphanEntry(**payload)


class ClassifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = AnalysisSettings()

    def test_complete_unique_orphan_is_kept_and_promoted(self) -> None:
        records = [
            FeatureRecord(
                id="1",
                featureCode="x_feature",
                featureName="X",
                routePath="/x",
                description="does x",
                createdAt="2024-03-01T10:00:00Z",
            )
        ]

        analysis = analyze_orphans([], records, self.settings)

        orphan = analysis.orphans[0]
        self.assertEqual(orphan.recommendation, Recommendation.KEEP_AS_PLANNED)
        self.assertEqual(orphan.recommendationReason, REASON_COMPLETE_UNIQUE)
        self.assertEqual([c.featureCode for c in analysis.registryCandidates], ["x_feature"])
        self.assertEqual(analysis.stats.registryCandidates, 1)

    def test_incomplete_orphan_is_recommended_for_delete(self) -> None:
        recommendation, reason, rule = classify_orphan(_entry("stub"), ClassificationContext(), self.settings)

        self.assertEqual(recommendation, Recommendation.DELETE)
        self.assertEqual(reason, REASON_INCOMPLETE)
        self.assertEqual(rule, RULE_INCOMPLETE)

    def test_partial_record_without_signal_falls_back_to_review(self) -> None:
        recommendation, reason, rule = classify_orphan(
            _entry("half_done", routePath="/half"), ClassificationContext(), self.settings
        )

        self.assertEqual(recommendation, Recommendation.REVIEW)
        self.assertEqual(reason, REASON_DEFAULT)
        self.assertEqual(rule, "default")

    def test_route_conflict_blocks_keep(self) -> None:
        entry = _entry("dup_route", routePath="/shared", description="d", routeConflict="/shared")

        recommendation, _, _ = classify_orphan(entry, ClassificationContext(), self.settings)

        self.assertEqual(recommendation, Recommendation.REVIEW)

    def test_merge_rule_lists_first_three_duplicates(self) -> None:
        entry = _entry("a", hasDuplicate=True, duplicateOf=["b", "c", "d", "e"])
        ctx = ClassificationContext(merge_clusters={"a": MergeClusterRef(label='name "A"', primary="b")})

        recommendation, reason, _ = classify_orphan(entry, ctx, self.settings)

        self.assertEqual(recommendation, Recommendation.MERGE)
        self.assertEqual(reason, 'Duplicate of b, c, d...; part of merge cluster name "A" (primary: b).')

    def test_rule_order_is_configurable(self) -> None:
        entry = _entry("bulk_stub", source="auto_migration")
        ctx = ClassificationContext(batch_codes={"bulk_stub"})

        default_rec, _, _ = classify_orphan(entry, ctx, self.settings)
        reordered = AnalysisSettings(rule_order=(RULE_MIGRATION_BATCH, RULE_INCOMPLETE))
        reordered_rec, _, rule = classify_orphan(entry, ctx, reordered)

        self.assertEqual(default_rec, Recommendation.DELETE)
        self.assertEqual(reordered_rec, Recommendation.ARCHIVE)
        self.assertEqual(rule, RULE_MIGRATION_BATCH)

    def test_unknown_rule_ids_are_skipped(self) -> None:
        settings = AnalysisSettings(rule_order=("no_such_rule", RULE_INCOMPLETE))

        with self.assertLogs("regaudit.orphans", level="WARNING"):
            recommendation, _, _ = classify_orphan(_entry("stub"), ClassificationContext(), settings)

        self.assertEqual(recommendation, Recommendation.DELETE)

    def test_candidates_exclude_clustered_entries(self) -> None:
        clean = _entry("clean", recommendation=Recommendation.KEEP_AS_PLANNED)
        clustered = _entry("clustered", recommendation=Recommendation.KEEP_AS_PLANNED, prefixCluster="base")
        other = _entry("other", recommendation=Recommendation.REVIEW)

        self.assertEqual(
            [entry.featureCode for entry in select_registry_candidates([clean, clustered, other])],
            ["clean"],
        )


if __name__ == "__main__":
    unittest.main()
