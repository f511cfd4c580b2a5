"""Prefixed-variant and migration-batch detectors."""
from __future__ import annotations

from collections import defaultdict

from registry_audit.date_utils import bucket_timestamp
from registry_audit.models import (
    DuplicateRecommendation,
    MigrationBatch,
    OrphanEntry,
    PrefixedVariantCluster,
    RegistryEntry,
)
from registry_audit.services.analysis_settings import AnalysisSettings
from registry_audit.services.orphan_clusters import cluster_differences
from registry_audit.services.reconciliation import code_key


def strip_prefix(code: str, prefixes: tuple[str, ...]) -> tuple[str, str]:
    """Return ``(base_code, prefix)`` after removing the longest known prefix.

    A code that is nothing but a prefix is left untouched.
    """
    best = ""
    for prefix in prefixes:
        if len(prefix) > len(best) and code.startswith(prefix) and len(code) > len(prefix):
            best = prefix
    return code[len(best):], best


def base_code(code: str, prefixes: tuple[str, ...]) -> str:
    return strip_prefix(code, prefixes)[0]


def _prefix_rank(prefix: str, priority: tuple[str, ...]) -> int:
    try:
        return priority.index(prefix)
    except ValueError:
        return len(priority)


def _suggest_primary(
    entries: list[OrphanEntry],
    registry_codes: list[str],
    settings: AnalysisSettings,
) -> str:
    prefixes = settings.known_prefixes
    members: list[tuple[str, str]] = [
        (code, strip_prefix(code, prefixes)[1]) for code in registry_codes
    ] + [(entry.featureCode, strip_prefix(entry.featureCode, prefixes)[1]) for entry in entries]

    unprefixed = sorted(code for code, prefix in members if not prefix)
    if unprefixed:
        return unprefixed[0]

    ranked = [
        (_prefix_rank(prefix, settings.prefix_priority), code not in registry_codes, code)
        for code, prefix in members
        if prefix in settings.prefix_priority
    ]
    if ranked:
        return min(ranked)[2]

    if entries:
        return min(entries, key=lambda entry: (entry.createdAt, entry.featureCode)).featureCode
    return sorted(registry_codes)[0]


def detect_prefixed_variants(
    orphans: list[OrphanEntry],
    registry: list[RegistryEntry],
    settings: AnalysisSettings,
) -> list[PrefixedVariantCluster]:
    """Cluster orphans (plus matching registry codes) that share a prefix-stripped base code."""
    prefixes = settings.known_prefixes
    orphan_groups: dict[str, list[OrphanEntry]] = defaultdict(list)
    for orphan in orphans:
        orphan_groups[code_key(base_code(orphan.featureCode, prefixes), settings)].append(orphan)

    registry_groups: dict[str, list[str]] = defaultdict(list)
    for entry in registry:
        key = code_key(base_code(entry.featureCode, prefixes), settings)
        if key in orphan_groups:
            registry_groups[key].append(entry.featureCode)

    clusters: list[PrefixedVariantCluster] = []
    for base in sorted(orphan_groups):
        entries = orphan_groups[base]
        registry_codes = sorted(registry_groups.get(base, []))
        if len(entries) + len(registry_codes) < 2:
            continue
        primary = _suggest_primary(entries, registry_codes, settings)
        others = [entry.featureCode for entry in entries if entry.featureCode != primary]
        location = " (already registered)" if primary in registry_codes else ""
        clusters.append(
            PrefixedVariantCluster(
                featureName=f"Variants of: {base}",
                baseCode=base,
                entries=entries,
                registryCodes=registry_codes,
                suggestedPrimary=primary,
                differences=cluster_differences(entries),
                mergeRecommendation=(
                    f'Keep "{primary}"{location} and fold the prefixed variants '
                    f"{', '.join(others)} into it."
                ),
                recommendation=DuplicateRecommendation.MERGE,
            )
        )
    return clusters


def detect_migration_batches(
    orphans: list[OrphanEntry],
    settings: AnalysisSettings,
) -> list[MigrationBatch]:
    """Buckets of orphans created within the same time slot, larger than the threshold."""
    buckets: dict[str, list[str]] = defaultdict(list)
    for orphan in orphans:
        buckets[bucket_timestamp(orphan.createdAt, settings.batch_granularity_seconds)].append(
            orphan.featureCode
        )

    batches = [
        MigrationBatch(timestamp=timestamp, count=len(codes), codes=codes)
        for timestamp, codes in buckets.items()
        if len(codes) > settings.batch_threshold
    ]
    batches.sort(key=lambda batch: (-batch.count, batch.timestamp))
    return batches
