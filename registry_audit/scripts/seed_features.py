#!/usr/bin/env python3
"""Load feature records from a JSON file into the feature record store.

The file holds a list of camelCase records (``id``, ``featureCode``,
``featureName``, ``moduleCode``, ``routePath``, ``description``, ``source``,
``createdAt`` ...). Existing ids are updated in place; review state is kept.

Usage:
  python -m registry_audit.scripts.seed_features features.json
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from registry_audit.db import connection, migrations
from registry_audit.db.factory import get_feature_record_repository

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("regaudit.seed")


async def seed(records: list[dict]) -> int:
    db = await connection.get_connection()
    try:
        await migrations.run_migrations(db)
        repo = get_feature_record_repository(db)
        count = 0
        for record in records:
            if not record.get("id") or not record.get("featureCode"):
                logger.warning("Skipping record without id/featureCode: %s", record)
                continue
            await repo.upsert(record)
            count += 1
        return count
    finally:
        await connection.close_connection()


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("path", help="JSON file with a list of feature records")
    args = parser.parse_args()

    payload = json.loads(Path(args.path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        logger.error("Expected a JSON list of feature records")
        return 1
    count = asyncio.run(seed(payload))
    logger.info("Upserted %d feature records", count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
