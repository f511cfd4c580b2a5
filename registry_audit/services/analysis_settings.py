"""Heuristic tables for the orphan analysis pass."""
from __future__ import annotations

from dataclasses import dataclass, replace

from registry_audit import config

RULE_MERGE_CLUSTER = "merge_cluster"
RULE_INCOMPLETE = "incomplete"
RULE_MIGRATION_BATCH = "migration_batch"
RULE_COMPLETE_UNIQUE = "complete_unique"
RULE_DEFAULT = "default"

DEFAULT_RULE_ORDER = (
    RULE_MERGE_CLUSTER,
    RULE_INCOMPLETE,
    RULE_MIGRATION_BATCH,
    RULE_COMPLETE_UNIQUE,
)

DEFAULT_KNOWN_PREFIXES = (
    "admin_", "ess_", "mss_", "emp_", "payroll_", "perf_",
    "recruit_", "succ_", "ben_", "comp_", "lms_", "hse_",
    "wf_", "hub_", "enbl_", "onb_", "er_", "rpt_", "prop_",
    "ta_", "time_", "leave_", "train_", "help_", "ai_",
)
DEFAULT_PREFIX_PRIORITY = ("ess_", "mss_", "admin_")


@dataclass(frozen=True)
class AnalysisSettings:
    """Every tunable the analysis pass reads.

    ``known_prefixes`` is the ordered prefix table for variant detection;
    ``prefix_priority`` ranks prefixes when no unprefixed code exists in a
    cluster. ``batch_threshold`` is exclusive: a bucket must hold more than
    this many orphans to count as a migration batch.

    Field defaults never read the environment; ``from_config`` layers the
    ``REGAUDIT_ORPHAN_*`` overrides on top of them.
    """

    known_prefixes: tuple[str, ...] = DEFAULT_KNOWN_PREFIXES
    prefix_priority: tuple[str, ...] = DEFAULT_PREFIX_PRIORITY
    batch_threshold: int = 10
    batch_granularity_seconds: int = 1
    similarity_threshold: float = 0.7
    similar_limit: int = 5
    normalize_codes: bool = False
    rule_order: tuple[str, ...] = DEFAULT_RULE_ORDER

    @classmethod
    def from_config(cls) -> "AnalysisSettings":
        return cls().with_overrides(
            known_prefixes=config.ORPHAN_KNOWN_PREFIXES,
            prefix_priority=config.ORPHAN_PREFIX_PRIORITY,
            batch_threshold=config.ORPHAN_BATCH_THRESHOLD,
            batch_granularity_seconds=config.ORPHAN_BATCH_GRANULARITY_SECONDS,
            similarity_threshold=config.ORPHAN_SIMILARITY_THRESHOLD,
            normalize_codes=config.ORPHAN_NORMALIZE_CODES,
            rule_order=config.ORPHAN_RULE_ORDER,
        )

    def with_overrides(self, **changes) -> "AnalysisSettings":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})
