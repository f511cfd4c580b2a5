#!/usr/bin/env python3
"""Reconcile the static feature registry against the feature record store.

Usage:
  python -m registry_audit.scripts.orphan_audit
  python -m registry_audit.scripts.orphan_audit --registry path/to/registry.yaml --json
  python -m registry_audit.scripts.orphan_audit --csv > orphans.csv
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import aiosqlite

from registry_audit import config
from registry_audit.db.repositories.feature_records import SqliteFeatureRecordRepository
from registry_audit.errors import DataFetchError
from registry_audit.models import OrphanAnalysis
from registry_audit.services.analysis_settings import AnalysisSettings
from registry_audit.services.orphan_analysis import group_orphans_by_module, run_orphan_analysis
from registry_audit.services.orphan_export import orphans_to_csv


async def _run(db_path: Path, registry_path: Path, settings: AnalysisSettings) -> OrphanAnalysis:
    async with aiosqlite.connect(str(db_path)) as db:
        db.row_factory = aiosqlite.Row
        return await run_orphan_analysis(SqliteFeatureRecordRepository(db), registry_path, settings)


def _print_summary(analysis: OrphanAnalysis, db_path: Path, registry_path: Path) -> None:
    stats = analysis.stats
    print(f"DB: {db_path}")
    print(f"Registry: {registry_path}")
    print(
        f"DB features: {stats.totalDbFeatures}  registry: {stats.registryFeatureCount}  "
        f"synced: {stats.syncedCount}  orphans: {stats.total}"
    )
    print("Recommendations: " + ", ".join(f"{key}={value}" for key, value in stats.byRecommendation.items()))
    print(
        f"Duplicate clusters: {stats.duplicateClusters}  route conflicts: {stats.routeConflicts}  "
        f"prefixed variants: {stats.prefixedVariantClusters}  migration batches: {stats.migrationBatches}  "
        f"candidates: {stats.registryCandidates}"
    )
    print("")
    for group in group_orphans_by_module(analysis.orphans):
        print(f"[{group.moduleCode}] {group.moduleName} ({group.count})")
        for entry in group.orphans:
            print(f"    {entry.featureCode:<32} {entry.recommendation.value:<16} {entry.recommendationReason}")
    for batch in analysis.migrationBatches:
        print(f"batch {batch.timestamp}: {batch.count} records")


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=config.DB_PATH)
    parser.add_argument("--registry", default=str(config.REGISTRY_PATH))
    parser.add_argument("--threshold", type=int, default=None, help="Migration batch size threshold")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true")
    output.add_argument("--csv", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"DB not found: {db_path}", file=sys.stderr)
        return 1
    registry_path = Path(args.registry)
    settings = AnalysisSettings.from_config().with_overrides(batch_threshold=args.threshold)

    try:
        analysis = asyncio.run(_run(db_path, registry_path, settings))
    except DataFetchError as exc:
        print(f"Analysis failed: {exc}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(analysis.model_dump(mode="json"), indent=2))
    elif args.csv:
        sys.stdout.write(orphans_to_csv(analysis.orphans))
    else:
        _print_summary(analysis, db_path, registry_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
