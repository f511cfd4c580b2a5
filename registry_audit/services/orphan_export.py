"""CSV export of orphan analysis rows."""
from __future__ import annotations

import csv
import io
from typing import Iterable

from registry_audit.models import OrphanEntry

# Column order is consumed by existing export tooling; do not reorder.
CSV_COLUMNS = [
    "featureCode",
    "featureName",
    "moduleCode",
    "routePath",
    "source",
    "recommendation",
    "recommendationReason",
]


def orphan_csv_row(entry: OrphanEntry) -> dict[str, str]:
    return {
        "featureCode": entry.featureCode,
        "featureName": entry.featureName,
        "moduleCode": entry.moduleCode or "",
        "routePath": entry.routePath or "",
        "source": entry.source.value,
        "recommendation": entry.recommendation.value,
        "recommendationReason": entry.recommendationReason,
    }


def orphans_to_csv(orphans: Iterable[OrphanEntry]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for entry in orphans:
        writer.writerow(orphan_csv_row(entry))
    return buffer.getvalue()
