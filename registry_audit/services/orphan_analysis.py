"""Full orphan analysis pass.

``analyze_orphans`` is a pure function of the registry and the feature
records: reconcile, cluster, detect patterns, classify and pick registry
candidates. ``run_orphan_analysis`` is the I/O wrapper that fetches both
inputs and is re-run in full after every review mutation.
"""
from __future__ import annotations

import logging
import time
from collections import Counter, defaultdict
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from registry_audit import config
from registry_audit.date_utils import parse_timestamp
from registry_audit.errors import DataFetchError
from registry_audit.models import (
    DuplicateRecommendation,
    FeatureRecord,
    ModuleOrphanGroup,
    OrphanAnalysis,
    OrphanEntry,
    OrphanSource,
    OrphanStats,
    Recommendation,
    RegistryEntry,
    ReviewStatus,
    SourceOrphanGroup,
)
from registry_audit.observability import record_analysis_pass, start_span
from registry_audit.parsers.registry import load_registry
from registry_audit.services.analysis_settings import AnalysisSettings
from registry_audit.services.orphan_clusters import (
    detect_duplicates,
    detect_route_conflicts,
    find_similar,
)
from registry_audit.services.orphan_patterns import (
    detect_migration_batches,
    detect_prefixed_variants,
)
from registry_audit.services.orphan_recommendations import (
    ClassificationContext,
    MergeClusterRef,
    apply_recommendations,
    select_registry_candidates,
)
from registry_audit.services.reconciliation import reconcile

logger = logging.getLogger("regaudit.orphans")

MODULE_NAMES = {
    "admin": "Administration",
    "workforce": "Workforce",
    "payroll": "Payroll",
    "performance": "Performance",
    "recruitment": "Recruitment",
    "compensation": "Compensation",
    "benefits": "Benefits",
    "leave": "Leave",
    "training": "Training",
    "succession": "Succession",
    "ess": "Employee Self-Service",
    "mss": "Manager Self-Service",
    "time_attendance": "Time & Attendance",
    "hse": "Health, Safety & Environment",
    "employee_relations": "Employee Relations",
    "property": "Property Management",
    "reports": "Reports",
    "enablement": "Enablement",
    "ai": "AI Hub",
    "help": "Help Center",
    "dashboard": "Dashboard",
    "auth": "Authentication",
}

UNASSIGNED_MODULE = "unassigned"
REVIEW_STATUS_RULE = "review_status"


def module_name(module_code: str | None) -> str | None:
    if not module_code:
        return None
    return MODULE_NAMES.get(module_code, module_code)


def record_from_row(row: dict[str, Any]) -> FeatureRecord:
    """Build a ``FeatureRecord`` from an ``application_features`` row."""
    is_active = row.get("is_active")
    return FeatureRecord(
        id=str(row["id"]),
        featureCode=str(row["feature_code"]),
        featureName=str(row.get("feature_name") or ""),
        moduleCode=row.get("module_code"),
        routePath=row.get("route_path"),
        description=row.get("description"),
        source=row.get("source"),
        createdAt=parse_timestamp(row["created_at"]),
        createdByName=row.get("created_by_name"),
        isActive=True if is_active is None else bool(is_active),
        groupCode=row.get("group_code"),
        groupName=row.get("group_name"),
        displayOrder=row.get("display_order"),
        reviewStatus=row.get("review_status"),
        reviewedBy=row.get("reviewed_by"),
        reviewedAt=parse_timestamp(row.get("reviewed_at")),
        reviewNotes=row.get("review_notes"),
    )


def _reviewed_reason(entry: OrphanEntry, verb: str) -> str:
    reason = f"{verb} by {entry.reviewedBy or 'reviewer'}"
    if entry.reviewNotes:
        reason += f": {entry.reviewNotes}"
    return reason + "."


def _attach_cluster_context(
    analysis: OrphanAnalysis,
    ctx: ClassificationContext,
) -> dict[str, set[str]]:
    related: dict[str, set[str]] = defaultdict(set)

    for cluster in analysis.duplicates:
        codes = [entry.featureCode for entry in cluster.entries]
        for entry in cluster.entries:
            entry.duplicateCluster = cluster.nameKey
            others = [code for code in codes if code != entry.featureCode]
            entry.duplicateOf.extend(others)
            related[entry.featureCode].update(others)
            if cluster.recommendation == DuplicateRecommendation.MERGE:
                ctx.merge_clusters[entry.featureCode] = MergeClusterRef(
                    label=f'name "{cluster.featureName}"',
                    primary=cluster.suggestedPrimary,
                )

    for variant in analysis.prefixedVariants:
        codes = [entry.featureCode for entry in variant.entries] + variant.registryCodes
        for entry in variant.entries:
            entry.prefixCluster = variant.baseCode
            others = [code for code in codes if code != entry.featureCode and code not in entry.duplicateOf]
            entry.duplicateOf.extend(others)
            related[entry.featureCode].update(others)
            ctx.merge_clusters.setdefault(
                entry.featureCode,
                MergeClusterRef(label=f'variants of "{variant.baseCode}"', primary=variant.suggestedPrimary),
            )

    for conflict in analysis.routeConflicts:
        for entry in conflict.entries:
            entry.routeConflict = conflict.routePath

    for clusters in (analysis.duplicates, analysis.prefixedVariants):
        for cluster in clusters:
            for entry in cluster.entries:
                entry.hasDuplicate = bool(entry.duplicateOf)

    return related


def _count(values, keys) -> dict[str, int]:
    counts = Counter(values)
    return {key: counts.get(key, 0) for key in keys}


def build_stats(
    analysis: OrphanAnalysis,
    *,
    total_db_features: int,
    registry_feature_count: int,
) -> OrphanStats:
    orphans = analysis.orphans
    by_module = Counter(entry.moduleCode or UNASSIGNED_MODULE for entry in orphans)
    created = [entry.createdAt for entry in orphans]
    return OrphanStats(
        total=len(orphans),
        totalDbFeatures=total_db_features,
        registryFeatureCount=registry_feature_count,
        syncedCount=total_db_features - len(orphans),
        bySource=_count((entry.source.value for entry in orphans), [s.value for s in OrphanSource]),
        byRecommendation=_count(
            (entry.recommendation.value for entry in orphans), [r.value for r in Recommendation]
        ),
        byModule=dict(sorted(by_module.items())),
        byReviewStatus=_count((entry.reviewStatus.value for entry in orphans), [s.value for s in ReviewStatus]),
        duplicateClusters=len(analysis.duplicates),
        routeConflicts=len(analysis.routeConflicts),
        prefixedVariantClusters=len(analysis.prefixedVariants),
        migrationBatches=len(analysis.migrationBatches),
        registryCandidates=len(analysis.registryCandidates),
        oldestOrphan=min(created) if created else None,
        newestOrphan=max(created) if created else None,
    )


def analyze_orphans(
    registry: list[RegistryEntry],
    records: list[FeatureRecord],
    settings: Optional[AnalysisSettings] = None,
) -> OrphanAnalysis:
    """Run reconciliation, clustering, classification and candidate selection."""
    settings = settings or AnalysisSettings.from_config()
    recon = reconcile(registry, records, settings)

    entries = [
        OrphanEntry(**record.model_dump(), moduleName=module_name(record.moduleCode))
        for record in recon.orphans
    ]
    pending = [entry for entry in entries if entry.reviewStatus == ReviewStatus.PENDING]
    kept = [entry for entry in entries if entry.reviewStatus == ReviewStatus.KEPT]
    archived = [entry for entry in entries if entry.reviewStatus == ReviewStatus.ARCHIVED]

    for entry in kept:
        entry.recommendation = Recommendation.KEEP_AS_PLANNED
        entry.recommendationReason = _reviewed_reason(entry, "Kept")
        entry.recommendationRule = REVIEW_STATUS_RULE
    for entry in archived:
        entry.recommendation = Recommendation.ARCHIVE
        entry.recommendationReason = _reviewed_reason(entry, "Archived")
        entry.recommendationRule = REVIEW_STATUS_RULE

    analysis = OrphanAnalysis(
        orphans=entries,
        keptEntries=kept,
        archivedEntries=archived,
        duplicates=detect_duplicates(pending),
        routeConflicts=detect_route_conflicts(pending),
        prefixedVariants=detect_prefixed_variants(pending, registry, settings),
        migrationBatches=detect_migration_batches(pending, settings),
    )

    ctx = ClassificationContext()
    related = _attach_cluster_context(analysis, ctx)
    by_code = {entry.featureCode: entry for entry in pending}
    for batch in analysis.migrationBatches:
        for code in batch.codes:
            by_code[code].migrationBatch = batch.timestamp
            ctx.batch_codes.add(code)

    similar = find_similar(pending, related, settings.similarity_threshold, settings.similar_limit)
    for entry in pending:
        entry.similarTo = similar.get(entry.featureCode, [])

    apply_recommendations(pending, ctx, settings)
    analysis.registryCandidates = select_registry_candidates(pending)
    analysis.stats = build_stats(
        analysis,
        total_db_features=recon.totalDbFeatures,
        registry_feature_count=recon.registryFeatureCount,
    )
    return analysis


def group_orphans_by_module(orphans: list[OrphanEntry]) -> list[ModuleOrphanGroup]:
    groups: dict[str, list[OrphanEntry]] = defaultdict(list)
    for entry in orphans:
        groups[entry.moduleCode or UNASSIGNED_MODULE].append(entry)

    result = []
    for code, entries in groups.items():
        counts = Counter(entry.recommendation for entry in entries)
        result.append(
            ModuleOrphanGroup(
                moduleCode=code,
                moduleName=entries[0].moduleName or code,
                orphans=entries,
                count=len(entries),
                recommendations={
                    "keep": counts.get(Recommendation.KEEP_AS_PLANNED, 0),
                    "archive": counts.get(Recommendation.ARCHIVE, 0),
                    "delete": counts.get(Recommendation.DELETE, 0),
                    "merge": counts.get(Recommendation.MERGE, 0),
                    "review": counts.get(Recommendation.REVIEW, 0),
                },
            )
        )
    result.sort(key=lambda group: (-group.count, group.moduleCode))
    return result


def group_orphans_by_source(orphans: list[OrphanEntry]) -> list[SourceOrphanGroup]:
    groups: dict[OrphanSource, list[OrphanEntry]] = defaultdict(list)
    for entry in orphans:
        groups[entry.source].append(entry)
    result = [
        SourceOrphanGroup(source=source, orphans=entries, count=len(entries))
        for source, entries in groups.items()
    ]
    result.sort(key=lambda group: (-group.count, group.source.value))
    return result


async def fetch_feature_records(repository) -> list[FeatureRecord]:
    try:
        rows = await repository.list_all()
    except Exception as exc:  # noqa: BLE001 - any store failure aborts the pass
        raise DataFetchError("feature_store", str(exc) or type(exc).__name__) from exc
    try:
        return [record_from_row(row) for row in rows]
    except (KeyError, PydanticValidationError) as exc:
        raise DataFetchError("feature_store", f"malformed feature record: {exc}") from exc


async def run_orphan_analysis(
    repository,
    registry_path: Path | str | None = None,
    settings: Optional[AnalysisSettings] = None,
) -> OrphanAnalysis:
    """Fetch the registry and every feature record, then run the full pass.

    Raises ``DataFetchError`` when either input cannot be read; no partial
    analysis is returned.
    """
    started = time.perf_counter()
    with start_span("orphans.analysis"):
        try:
            registry = load_registry(registry_path or config.REGISTRY_PATH)
            records = await fetch_feature_records(repository)
        except DataFetchError as exc:
            record_analysis_pass("fetch_error", (time.perf_counter() - started) * 1000, 0)
            logger.error("Orphan analysis aborted: %s", exc)
            raise
        analysis = analyze_orphans(registry, records, settings)

    duration_ms = (time.perf_counter() - started) * 1000
    record_analysis_pass("success", duration_ms, analysis.stats.total)
    logger.info(
        "Orphan analysis: %d db features, %d registry features, %d orphans (%.1f ms)",
        analysis.stats.totalDbFeatures,
        analysis.stats.registryFeatureCount,
        analysis.stats.total,
        duration_ms,
    )
    return analysis
