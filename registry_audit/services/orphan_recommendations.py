"""Ordered recommendation rules and the registry-candidate filter."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from registry_audit.models import OrphanEntry, OrphanSource, Recommendation
from registry_audit.services.analysis_settings import (
    RULE_COMPLETE_UNIQUE,
    RULE_DEFAULT,
    RULE_INCOMPLETE,
    RULE_MERGE_CLUSTER,
    RULE_MIGRATION_BATCH,
    AnalysisSettings,
)

logger = logging.getLogger("regaudit.orphans")

REASON_INCOMPLETE = "No route or description; appears incomplete/abandoned."
REASON_MIGRATION_BATCH = "Bulk-migrated record, not individually authored."
REASON_COMPLETE_UNIQUE = "Complete, unique feature record."
REASON_DEFAULT = "Insufficient signal for automatic classification."


@dataclass(frozen=True)
class MergeClusterRef:
    label: str
    primary: str


@dataclass
class ClassificationContext:
    """Cluster signals gathered before classification, keyed by feature code."""

    merge_clusters: dict[str, MergeClusterRef] = field(default_factory=dict)
    batch_codes: set[str] = field(default_factory=set)


RuleResult = Optional[tuple[Recommendation, str]]
Rule = Callable[[OrphanEntry, ClassificationContext], RuleResult]


def _merge_cluster_rule(entry: OrphanEntry, ctx: ClassificationContext) -> RuleResult:
    cluster = ctx.merge_clusters.get(entry.featureCode)
    if not entry.hasDuplicate or cluster is None:
        return None
    shown = ", ".join(entry.duplicateOf[:3])
    more = "..." if len(entry.duplicateOf) > 3 else ""
    return (
        Recommendation.MERGE,
        f"Duplicate of {shown}{more}; part of merge cluster {cluster.label} (primary: {cluster.primary}).",
    )


def _incomplete_rule(entry: OrphanEntry, ctx: ClassificationContext) -> RuleResult:
    if entry.routePath is None and entry.description is None:
        return Recommendation.DELETE, REASON_INCOMPLETE
    return None


def _migration_batch_rule(entry: OrphanEntry, ctx: ClassificationContext) -> RuleResult:
    if entry.source == OrphanSource.AUTO_MIGRATION and entry.featureCode in ctx.batch_codes:
        return Recommendation.ARCHIVE, REASON_MIGRATION_BATCH
    return None


def _complete_unique_rule(entry: OrphanEntry, ctx: ClassificationContext) -> RuleResult:
    if entry.isComplete and not entry.hasDuplicate and not entry.inRouteConflict:
        return Recommendation.KEEP_AS_PLANNED, REASON_COMPLETE_UNIQUE
    return None


RULES: dict[str, Rule] = {
    RULE_MERGE_CLUSTER: _merge_cluster_rule,
    RULE_INCOMPLETE: _incomplete_rule,
    RULE_MIGRATION_BATCH: _migration_batch_rule,
    RULE_COMPLETE_UNIQUE: _complete_unique_rule,
}


def classify_orphan(
    entry: OrphanEntry,
    ctx: ClassificationContext,
    settings: AnalysisSettings,
) -> tuple[Recommendation, str, str]:
    """First matching rule in ``settings.rule_order`` wins; otherwise ``review``."""
    for rule_id in settings.rule_order:
        rule = RULES.get(rule_id)
        if rule is None:
            logger.warning("Unknown recommendation rule %r ignored", rule_id)
            continue
        outcome = rule(entry, ctx)
        if outcome is not None:
            recommendation, reason = outcome
            return recommendation, reason, rule_id
    return Recommendation.REVIEW, REASON_DEFAULT, RULE_DEFAULT


def apply_recommendations(
    orphans: list[OrphanEntry],
    ctx: ClassificationContext,
    settings: AnalysisSettings,
) -> None:
    for entry in orphans:
        recommendation, reason, rule_id = classify_orphan(entry, ctx, settings)
        entry.recommendation = recommendation
        entry.recommendationReason = reason
        entry.recommendationRule = rule_id


def select_registry_candidates(orphans: list[OrphanEntry]) -> list[OrphanEntry]:
    """Complete, conflict-free orphans worth promoting into the static registry."""
    return [
        entry
        for entry in orphans
        if entry.recommendation == Recommendation.KEEP_AS_PLANNED
        and entry.duplicateCluster is None
        and entry.routeConflict is None
        and entry.prefixCluster is None
    ]
