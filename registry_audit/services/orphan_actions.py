"""Review actions on orphaned feature records.

Single-record calls raise ``MutationError``; bulk calls apply the single-record
call to each id independently and report per-item results. Bulk operations
are not transactional: a failed item stays in its previous review state.
Callers re-run the full analysis after any mutation.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from registry_audit import config
from registry_audit.date_utils import utc_now
from registry_audit.errors import (
    IllegalTransitionError,
    MutationError,
    RecordNotFoundError,
    ValidationError,
)
from registry_audit.models import ActionResult, BulkActionResult, ReviewStatus, can_transition
from registry_audit.observability import record_orphan_action

logger = logging.getLogger("regaudit.actions")

ACTION_ARCHIVE = "archive"
ACTION_DELETE = "delete"
ACTION_KEEP = "keep"
ACTION_UNDO_KEEP = "undo_keep"


def expected_delete_confirmation(count: int) -> str:
    return f"DELETE {count}"


class OrphanActionService:
    """Applies reviewer decisions through a feature record repository."""

    def __init__(
        self,
        repository,
        *,
        max_concurrency: Optional[int] = None,
        delete_confirm_threshold: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.max_concurrency = max(1, max_concurrency or config.BULK_MAX_CONCURRENCY)
        self.delete_confirm_threshold = (
            config.BULK_DELETE_CONFIRM_THRESHOLD if delete_confirm_threshold is None else delete_confirm_threshold
        )
        self._clock = clock

    # ── Single-record actions ──────────────────────────────────────

    async def archive(self, record_id: str, *, reviewer: str | None = None, notes: str | None = None) -> ActionResult:
        return await self._transition(record_id, ACTION_ARCHIVE, ReviewStatus.ARCHIVED, reviewer=reviewer, notes=notes)

    async def delete(self, record_id: str, *, reviewer: str | None = None) -> ActionResult:
        return await self._transition(record_id, ACTION_DELETE, ReviewStatus.DELETED, reviewer=reviewer)

    async def mark_kept(self, record_id: str, notes: str | None = None, *, reviewer: str | None = None) -> ActionResult:
        return await self._transition(record_id, ACTION_KEEP, ReviewStatus.KEPT, reviewer=reviewer, notes=notes)

    async def undo_keep(self, record_id: str, *, reviewer: str | None = None) -> ActionResult:
        return await self._transition(record_id, ACTION_UNDO_KEEP, ReviewStatus.PENDING, reviewer=reviewer)

    # ── Bulk actions ───────────────────────────────────────────────

    async def archive_many(
        self, record_ids: Iterable[str], *, reviewer: str | None = None, notes: str | None = None
    ) -> BulkActionResult:
        return await self._run_bulk(
            ACTION_ARCHIVE,
            self._unique_ids(record_ids),
            lambda record_id: self.archive(record_id, reviewer=reviewer, notes=notes),
        )

    async def delete_many(
        self,
        record_ids: Iterable[str],
        *,
        confirmation: str | None = None,
        reviewer: str | None = None,
    ) -> BulkActionResult:
        ids = self._unique_ids(record_ids)
        if len(ids) > self.delete_confirm_threshold:
            expected = expected_delete_confirmation(len(ids))
            if (confirmation or "").strip() != expected:
                raise ValidationError(
                    f"Deleting {len(ids)} records requires the confirmation token '{expected}'"
                )
        return await self._run_bulk(
            ACTION_DELETE,
            ids,
            lambda record_id: self.delete(record_id, reviewer=reviewer),
        )

    async def mark_many_kept(
        self, record_ids: Iterable[str], notes: str | None = None, *, reviewer: str | None = None
    ) -> BulkActionResult:
        return await self._run_bulk(
            ACTION_KEEP,
            self._unique_ids(record_ids),
            lambda record_id: self.mark_kept(record_id, notes, reviewer=reviewer),
        )

    # ── Internals ──────────────────────────────────────────────────

    @staticmethod
    def _unique_ids(record_ids: Iterable[str]) -> list[str]:
        ids = list(dict.fromkeys(str(item).strip() for item in record_ids if str(item).strip()))
        if not ids:
            raise ValidationError("At least one record id is required")
        return ids

    async def _run_bulk(
        self,
        action: str,
        record_ids: list[str],
        apply: Callable[[str], Awaitable[ActionResult]],
    ) -> BulkActionResult:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run_one(record_id: str) -> ActionResult:
            async with semaphore:
                try:
                    return await apply(record_id)
                except MutationError as exc:
                    return ActionResult(id=record_id, action=action, success=False, error=str(exc))

        results = await asyncio.gather(*(_run_one(record_id) for record_id in record_ids))
        bulk = BulkActionResult(action=action, results=list(results))
        summary = bulk.summary()
        if summary["failed"]:
            logger.warning(
                "Bulk %s finished with failures: %d/%d succeeded",
                action,
                summary["succeeded"],
                summary["requested"],
            )
        else:
            logger.info("Bulk %s applied to %d records", action, summary["succeeded"])
        return bulk

    async def _load_status(self, record_id: str) -> ReviewStatus:
        try:
            row = await self.repository.get_by_id(record_id)
        except Exception as exc:  # noqa: BLE001 - store failures are reported per item
            raise MutationError(record_id, f"Failed to load record {record_id}: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(record_id)
        raw_status = row.get("review_status") or ReviewStatus.PENDING.value
        try:
            return ReviewStatus(raw_status)
        except ValueError as exc:
            raise MutationError(record_id, f"Unknown review status '{raw_status}'") from exc

    async def _transition(
        self,
        record_id: str,
        action: str,
        target: ReviewStatus,
        *,
        reviewer: str | None = None,
        notes: str | None = None,
    ) -> ActionResult:
        try:
            current = await self._load_status(record_id)
            if not can_transition(current, target):
                raise IllegalTransitionError(record_id, current.value, target.value)

            # Writes only land while the row still holds ``current``.
            try:
                if target == ReviewStatus.DELETED:
                    applied = await self.repository.delete(record_id, expected_status=current.value)
                elif target == ReviewStatus.PENDING:
                    applied = await self.repository.update_review(
                        record_id,
                        expected_status=current.value,
                        review_status=target.value,
                        reviewed_by=None,
                        reviewed_at=None,
                        review_notes=None,
                    )
                else:
                    applied = await self.repository.update_review(
                        record_id,
                        expected_status=current.value,
                        review_status=target.value,
                        reviewed_by=reviewer,
                        reviewed_at=self._clock().isoformat(),
                        review_notes=notes,
                    )
            except Exception as exc:  # noqa: BLE001 - wrapped for per-item reporting
                raise MutationError(record_id, f"Store rejected {action} for {record_id}: {exc}") from exc
            if not applied:
                latest = await self._load_status(record_id)
                raise IllegalTransitionError(record_id, latest.value, target.value)
        except MutationError:
            record_orphan_action(action, "failure")
            raise

        record_orphan_action(action, "success")
        logger.info(
            "Orphan %s: %s %s → %s (by %s)",
            action,
            record_id,
            current.value,
            target.value,
            reviewer or "unknown",
        )
        return ActionResult(id=record_id, action=action, success=True, reviewStatus=target)
