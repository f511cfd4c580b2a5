"""Duplicate-name clusters, route conflicts and Levenshtein name similarity."""
from __future__ import annotations

import re
from collections import defaultdict
from typing import Iterable

from rapidfuzz.distance import Levenshtein

from registry_audit.models import (
    ClusterDifferences,
    DuplicateRecommendation,
    OrphanDuplicate,
    OrphanEntry,
    OrphanRouteConflict,
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def name_key(name: str) -> str:
    return (name or "").strip().lower()


def route_pattern(route: str) -> str:
    """Collapse a route into a comparable pattern (``/x/:id/`` → ``/x/:param``)."""
    token = (route or "").strip().lower()
    if not token:
        return ""
    segments = []
    for segment in token.strip("/").split("/"):
        if segment.startswith(":") or segment.startswith("{") or segment.isdigit():
            segments.append(":param")
        else:
            segments.append(segment)
    return "/" + "/".join(segments)


def _distinct(values: Iterable[str | None]) -> list[str]:
    return sorted({value.strip() for value in values if value and value.strip()})


def cluster_differences(entries: list[OrphanEntry]) -> ClusterDifferences:
    modules = _distinct(entry.moduleCode for entry in entries)
    patterns = _distinct(route_pattern(entry.routePath or "") for entry in entries)
    descriptions = _distinct(entry.description for entry in entries)
    return ClusterDifferences(
        modules=modules,
        routePatterns=patterns,
        hasDifferentModules=len(modules) > 1,
        hasDifferentRoutePatterns=len(patterns) > 1,
        hasDifferentDescriptions=len(descriptions) > 1,
    )


def primary_sort_key(entry: OrphanEntry) -> tuple:
    # Complete records first, then the oldest, then the smallest code.
    return (not entry.isComplete, entry.createdAt, entry.featureCode)


def pick_primary(entries: list[OrphanEntry]) -> OrphanEntry:
    return min(entries, key=primary_sort_key)


def _duplicate_recommendation(differences: ClusterDifferences) -> DuplicateRecommendation:
    if not (
        differences.hasDifferentModules
        or differences.hasDifferentRoutePatterns
        or differences.hasDifferentDescriptions
    ):
        return DuplicateRecommendation.MERGE
    if differences.hasDifferentModules:
        return DuplicateRecommendation.RENAME_ONE
    return DuplicateRecommendation.REVIEW


def _merge_text(
    recommendation: DuplicateRecommendation,
    primary: OrphanEntry,
    entries: list[OrphanEntry],
    differences: ClusterDifferences,
) -> str:
    others = [entry.featureCode for entry in entries if entry.featureCode != primary.featureCode]
    if recommendation == DuplicateRecommendation.MERGE:
        return (
            f'Keep "{primary.featureCode}" and merge {", ".join(others)} into it; '
            "the records carry the same content under different codes."
        )
    if recommendation == DuplicateRecommendation.RENAME_ONE:
        return (
            f'Keep "{primary.featureCode}" and rename {", ".join(others)}; '
            f"the name is reused across modules {', '.join(differences.modules)}."
        )
    return (
        f'Review manually; "{primary.featureCode}" is the most complete record '
        "but routes or descriptions differ."
    )


def detect_duplicates(orphans: list[OrphanEntry]) -> list[OrphanDuplicate]:
    """Group orphans sharing a trimmed, case-insensitive feature name."""
    groups: dict[str, list[OrphanEntry]] = defaultdict(list)
    for orphan in orphans:
        key = name_key(orphan.featureName)
        if key:
            groups[key].append(orphan)

    clusters: list[OrphanDuplicate] = []
    for key in sorted(groups):
        entries = groups[key]
        if len(entries) < 2:
            continue
        primary = pick_primary(entries)
        differences = cluster_differences(entries)
        recommendation = _duplicate_recommendation(differences)
        clusters.append(
            OrphanDuplicate(
                featureName=primary.featureName.strip(),
                nameKey=key,
                entries=entries,
                suggestedPrimary=primary.featureCode,
                differences=differences,
                mergeRecommendation=_merge_text(recommendation, primary, entries, differences),
                recommendation=recommendation,
            )
        )
    return clusters


def detect_route_conflicts(orphans: list[OrphanEntry]) -> list[OrphanRouteConflict]:
    """Group orphans that resolve to the same non-null route path."""
    groups: dict[str, list[OrphanEntry]] = defaultdict(list)
    for orphan in orphans:
        if orphan.routePath:
            groups[orphan.routePath.strip()].append(orphan)

    conflicts: list[OrphanRouteConflict] = []
    for route in sorted(groups):
        entries = groups[route]
        if len(entries) < 2:
            continue
        conflicts.append(
            OrphanRouteConflict(
                routePath=route,
                entries=entries,
                conflictReason=f"{len(entries)} records map to the same route; only one should remain active.",
            )
        )
    return conflicts


def _compact_name(name: str) -> str:
    return _NON_ALNUM_RE.sub("", (name or "").lower())


def name_similarity(left: str, right: str) -> float:
    a = _compact_name(left)
    b = _compact_name(right)
    if not a or not b:
        return 0.0
    # 1 - edit distance / longer length
    return Levenshtein.normalized_similarity(a, b)


def find_similar(
    orphans: list[OrphanEntry],
    related: dict[str, set[str]],
    threshold: float,
    limit: int,
) -> dict[str, list[str]]:
    """Codes of orphans with similar (not identical-cluster) names, per orphan code.

    ``related`` maps a code to the codes it already shares a duplicate or
    prefix cluster with; those are not repeated as similar.
    """
    similar: dict[str, list[str]] = {orphan.featureCode: [] for orphan in orphans}
    for i, left in enumerate(orphans):
        for right in orphans[i + 1:]:
            if right.featureCode in related.get(left.featureCode, set()):
                continue
            if name_similarity(left.featureName, right.featureName) > threshold:
                similar[left.featureCode].append(right.featureCode)
                similar[right.featureCode].append(left.featureCode)
    return {code: matches[:limit] for code, matches in similar.items()}
