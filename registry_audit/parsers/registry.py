"""Static feature registry loader.

The registry is declared in YAML as ``modules → groups → features``; a flat
top-level ``features`` list is accepted as well. Each feature becomes one
``RegistryEntry`` keyed by its code.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import yaml

from registry_audit.errors import DataFetchError
from registry_audit.models import RegistryEntry

logger = logging.getLogger("regaudit.registry")


def _entry_from_feature(feature: dict[str, Any], module_code: str | None) -> RegistryEntry | None:
    code = str(feature.get("code") or feature.get("featureCode") or "").strip()
    if not code:
        return None
    return RegistryEntry(
        featureCode=code,
        featureName=str(feature.get("name") or feature.get("featureName") or ""),
        moduleCode=feature.get("moduleCode") or module_code,
        routePath=feature.get("routePath") or None,
        description=feature.get("description") or None,
    )


def _iter_features(payload: dict[str, Any]) -> Iterable[tuple[dict[str, Any], str | None]]:
    for module in payload.get("modules") or []:
        if not isinstance(module, dict):
            continue
        module_code = module.get("code")
        for group in module.get("groups") or []:
            if not isinstance(group, dict):
                continue
            for feature in group.get("features") or []:
                if isinstance(feature, dict):
                    yield feature, module_code
        for feature in module.get("features") or []:
            if isinstance(feature, dict):
                yield feature, module_code
    for feature in payload.get("features") or []:
        if isinstance(feature, dict):
            yield feature, None


def parse_registry(payload: Any) -> list[RegistryEntry]:
    """Flatten a decoded registry document into unique entries (first code wins)."""
    if payload is None:
        return []
    if not isinstance(payload, dict):
        raise DataFetchError("registry", "registry document must be a mapping")

    entries: list[RegistryEntry] = []
    seen: set[str] = set()
    for feature, module_code in _iter_features(payload):
        entry = _entry_from_feature(feature, module_code)
        if entry is None:
            continue
        if entry.featureCode in seen:
            logger.warning("Duplicate registry code ignored: %s", entry.featureCode)
            continue
        seen.add(entry.featureCode)
        entries.append(entry)
    return entries


def load_registry(path: Path | str) -> list[RegistryEntry]:
    registry_path = Path(path)
    try:
        payload = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise DataFetchError("registry", f"cannot read {registry_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DataFetchError("registry", f"invalid YAML in {registry_path}: {exc}") from exc

    entries = parse_registry(payload)
    logger.info("Loaded %d registry features from %s", len(entries), registry_path)
    return entries
