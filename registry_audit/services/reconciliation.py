"""Registry ↔ database set difference."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from registry_audit.models import FeatureRecord, RegistryEntry, ReviewStatus
from registry_audit.services.analysis_settings import AnalysisSettings

logger = logging.getLogger("regaudit.orphans")


def code_key(code: str, settings: AnalysisSettings) -> str:
    if settings.normalize_codes:
        return (code or "").strip().lower()
    return code


@dataclass
class ReconciliationResult:
    orphans: list[FeatureRecord] = field(default_factory=list)
    totalDbFeatures: int = 0
    registryFeatureCount: int = 0

    @property
    def syncedCount(self) -> int:
        return self.totalDbFeatures - len(self.orphans)


def _orphan_sort_key(record: FeatureRecord) -> tuple[str, str, str]:
    return (record.moduleCode or "", record.featureName, record.featureCode)


def reconcile(
    registry: list[RegistryEntry],
    records: list[FeatureRecord],
    settings: AnalysisSettings,
) -> ReconciliationResult:
    """Return the database records whose code has no registry counterpart.

    Records already deleted in review never enter a pass. When the store
    holds two records with the same code, only the earliest-created one is
    considered so orphan codes stay unique.
    """
    registry_codes = {code_key(entry.featureCode, settings) for entry in registry}

    live_records: dict[str, FeatureRecord] = {}
    for record in sorted(records, key=lambda item: (item.createdAt, item.id)):
        if record.reviewStatus == ReviewStatus.DELETED:
            continue
        key = code_key(record.featureCode, settings)
        if key in live_records:
            logger.warning(
                "Duplicate feature code %s in store (ids %s, %s); keeping the earliest",
                record.featureCode,
                live_records[key].id,
                record.id,
            )
            continue
        live_records[key] = record

    orphans = [record for key, record in live_records.items() if key not in registry_codes]
    orphans.sort(key=_orphan_sort_key)
    return ReconciliationResult(
        orphans=orphans,
        totalDbFeatures=len(live_records),
        registryFeatureCount=len(registry_codes),
    )
