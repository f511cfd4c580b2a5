"""Pydantic models matching the admin console TypeScript types."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class OrphanSource(str, Enum):
    AUTO_MIGRATION = "auto_migration"
    MANUAL_ENTRY = "manual_entry"
    REGISTRY = "registry"
    UNKNOWN = "unknown"


class Recommendation(str, Enum):
    KEEP_AS_PLANNED = "keep_as_planned"
    ARCHIVE = "archive"
    DELETE = "delete"
    MERGE = "merge"
    REVIEW = "review"


class DuplicateRecommendation(str, Enum):
    KEEP_BOTH = "keep_both"
    MERGE = "merge"
    RENAME_ONE = "rename_one"
    REVIEW = "review"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    KEPT = "kept"
    ARCHIVED = "archived"
    DELETED = "deleted"


# archived and deleted are terminal; kept can only be undone back to pending.
REVIEW_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.KEPT, ReviewStatus.ARCHIVED, ReviewStatus.DELETED}),
    ReviewStatus.KEPT: frozenset({ReviewStatus.PENDING}),
    ReviewStatus.ARCHIVED: frozenset(),
    ReviewStatus.DELETED: frozenset(),
}


def can_transition(current: ReviewStatus | str, target: ReviewStatus | str) -> bool:
    try:
        current_status = ReviewStatus(current)
        target_status = ReviewStatus(target)
    except ValueError:
        return False
    return target_status in REVIEW_TRANSITIONS[current_status]


def parse_source(raw: object) -> OrphanSource:
    """Map a free-form ``source`` column value onto a known provenance."""
    if isinstance(raw, OrphanSource):
        return raw
    if not raw:
        return OrphanSource.UNKNOWN
    token = str(raw).strip().lower()
    if "migration" in token:
        return OrphanSource.AUTO_MIGRATION
    if "manual" in token:
        return OrphanSource.MANUAL_ENTRY
    if "registry" in token:
        return OrphanSource.REGISTRY
    return OrphanSource.UNKNOWN


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ── Registry / record models ───────────────────────────────────────

class RegistryEntry(BaseModel):
    featureCode: str
    featureName: str = ""
    moduleCode: Optional[str] = None
    routePath: Optional[str] = None
    description: Optional[str] = None


class FeatureRecord(BaseModel):
    id: str
    featureCode: str
    featureName: str = ""
    moduleCode: Optional[str] = None
    routePath: Optional[str] = None
    description: Optional[str] = None
    source: OrphanSource = OrphanSource.UNKNOWN
    createdAt: datetime
    createdByName: Optional[str] = None
    isActive: bool = True
    groupCode: Optional[str] = None
    groupName: Optional[str] = None
    displayOrder: Optional[int] = None
    reviewStatus: ReviewStatus = ReviewStatus.PENDING
    reviewedBy: Optional[str] = None
    reviewedAt: Optional[datetime] = None
    reviewNotes: Optional[str] = None

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: object) -> OrphanSource:
        return parse_source(value)

    @field_validator("moduleCode", "routePath", "description", "createdByName", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("reviewStatus", mode="before")
    @classmethod
    def _default_review_status(cls, value: object) -> object:
        return value or ReviewStatus.PENDING

    @field_validator("createdAt", "reviewedAt")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def hasRoute(self) -> bool:
        return self.routePath is not None

    @property
    def hasDescription(self) -> bool:
        return self.description is not None

    @property
    def isComplete(self) -> bool:
        return self.hasRoute and self.hasDescription


# ── Analysis output models ─────────────────────────────────────────

class OrphanEntry(FeatureRecord):
    moduleName: Optional[str] = None
    hasDuplicate: bool = False
    duplicateOf: list[str] = Field(default_factory=list)
    similarTo: list[str] = Field(default_factory=list)
    recommendation: Recommendation = Recommendation.REVIEW
    recommendationReason: str = ""
    recommendationRule: str = ""
    # Cluster context, attached independently of the recommendation.
    duplicateCluster: Optional[str] = None
    routeConflict: Optional[str] = None
    prefixCluster: Optional[str] = None
    migrationBatch: Optional[str] = None

    @property
    def inRouteConflict(self) -> bool:
        return self.routeConflict is not None


class ClusterDifferences(BaseModel):
    modules: list[str] = Field(default_factory=list)
    routePatterns: list[str] = Field(default_factory=list)
    hasDifferentModules: bool = False
    hasDifferentRoutePatterns: bool = False
    hasDifferentDescriptions: bool = False


class OrphanDuplicate(BaseModel):
    featureName: str
    nameKey: str
    entries: list[OrphanEntry]
    suggestedPrimary: str
    differences: ClusterDifferences
    mergeRecommendation: str
    recommendation: DuplicateRecommendation


class PrefixedVariantCluster(BaseModel):
    featureName: str
    baseCode: str
    entries: list[OrphanEntry]
    registryCodes: list[str] = Field(default_factory=list)
    suggestedPrimary: str
    differences: ClusterDifferences
    mergeRecommendation: str
    recommendation: DuplicateRecommendation = DuplicateRecommendation.MERGE


class OrphanRouteConflict(BaseModel):
    routePath: str
    entries: list[OrphanEntry]
    conflictReason: str


class MigrationBatch(BaseModel):
    timestamp: str
    count: int
    codes: list[str]


class OrphanStats(BaseModel):
    total: int = 0
    totalDbFeatures: int = 0
    registryFeatureCount: int = 0
    syncedCount: int = 0
    bySource: dict[str, int] = Field(default_factory=dict)
    byRecommendation: dict[str, int] = Field(default_factory=dict)
    byModule: dict[str, int] = Field(default_factory=dict)
    byReviewStatus: dict[str, int] = Field(default_factory=dict)
    duplicateClusters: int = 0
    routeConflicts: int = 0
    prefixedVariantClusters: int = 0
    migrationBatches: int = 0
    registryCandidates: int = 0
    oldestOrphan: Optional[datetime] = None
    newestOrphan: Optional[datetime] = None


class OrphanAnalysis(BaseModel):
    orphans: list[OrphanEntry] = Field(default_factory=list)
    keptEntries: list[OrphanEntry] = Field(default_factory=list)
    archivedEntries: list[OrphanEntry] = Field(default_factory=list)
    duplicates: list[OrphanDuplicate] = Field(default_factory=list)
    routeConflicts: list[OrphanRouteConflict] = Field(default_factory=list)
    prefixedVariants: list[PrefixedVariantCluster] = Field(default_factory=list)
    migrationBatches: list[MigrationBatch] = Field(default_factory=list)
    registryCandidates: list[OrphanEntry] = Field(default_factory=list)
    stats: OrphanStats = Field(default_factory=OrphanStats)


class ModuleOrphanGroup(BaseModel):
    moduleCode: str
    moduleName: str
    orphans: list[OrphanEntry]
    count: int
    recommendations: dict[str, int]


class SourceOrphanGroup(BaseModel):
    source: OrphanSource
    orphans: list[OrphanEntry]
    count: int


# ── Action results ─────────────────────────────────────────────────

class ActionResult(BaseModel):
    id: str
    action: str
    success: bool
    reviewStatus: Optional[ReviewStatus] = None
    error: Optional[str] = None


class BulkActionResult(BaseModel):
    action: str
    results: list[ActionResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ActionResult]:
        return [item for item in self.results if item.success]

    @property
    def failed(self) -> list[ActionResult]:
        return [item for item in self.results if not item.success]

    def summary(self) -> dict[str, int]:
        return {
            "requested": len(self.results),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
        }
