"""Orphan management API router."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel, Field

from registry_audit import config
from registry_audit.db import connection
from registry_audit.db.factory import get_feature_record_repository
from registry_audit.errors import DataFetchError, MutationError, RecordNotFoundError, ValidationError
from registry_audit.models import ActionResult, BulkActionResult, OrphanAnalysis
from registry_audit.services.analysis_settings import AnalysisSettings
from registry_audit.services.orphan_actions import OrphanActionService
from registry_audit.services.orphan_analysis import (
    group_orphans_by_module,
    group_orphans_by_source,
    run_orphan_analysis,
)
from registry_audit.services.orphan_export import orphans_to_csv

orphans_router = APIRouter(prefix="/api/orphans", tags=["orphans"])
logger = logging.getLogger("regaudit.orphans")


# ── Request models ──────────────────────────────────────────────────

class ReviewRequest(BaseModel):
    reviewer: Optional[str] = None
    notes: Optional[str] = None


class BulkReviewRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)
    reviewer: Optional[str] = None
    notes: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)
    reviewer: Optional[str] = None
    confirmation: Optional[str] = None


# ── Helpers ─────────────────────────────────────────────────────────

async def _repository():
    db = await connection.get_connection()
    return get_feature_record_repository(db)


def _settings(batch_threshold: int | None = None) -> AnalysisSettings:
    return AnalysisSettings.from_config().with_overrides(batch_threshold=batch_threshold)


async def _analysis(repository, batch_threshold: int | None = None) -> OrphanAnalysis:
    try:
        return await run_orphan_analysis(repository, config.REGISTRY_PATH, _settings(batch_threshold))
    except DataFetchError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def _mutation_http_error(exc: MutationError) -> HTTPException:
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=409, detail=str(exc))


async def _single_action(call) -> dict[str, Any]:
    repository = await _repository()
    service = OrphanActionService(repository)
    try:
        result: ActionResult = await call(service)
    except MutationError as exc:
        raise _mutation_http_error(exc) from exc
    analysis = await _analysis(repository)
    return {"result": result.model_dump(mode="json"), "analysis": analysis.model_dump(mode="json")}


async def _bulk_action(call) -> dict[str, Any]:
    repository = await _repository()
    service = OrphanActionService(repository)
    try:
        bulk: BulkActionResult = await call(service)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    # Re-analyse even on partial failure so the caller sees the real state.
    analysis = await _analysis(repository)
    return {
        "action": bulk.action,
        "summary": bulk.summary(),
        "results": [item.model_dump(mode="json") for item in bulk.results],
        "analysis": analysis.model_dump(mode="json"),
    }


# ── Analysis ────────────────────────────────────────────────────────

@orphans_router.get("")
async def get_orphan_analysis(batch_threshold: int | None = Query(None, ge=0, le=10000)):
    """Run the full reconciliation and classification pass."""
    analysis = await _analysis(await _repository(), batch_threshold)
    return analysis.model_dump(mode="json")


@orphans_router.get("/by-module")
async def get_orphans_by_module():
    analysis = await _analysis(await _repository())
    return [group.model_dump(mode="json") for group in group_orphans_by_module(analysis.orphans)]


@orphans_router.get("/by-source")
async def get_orphans_by_source():
    analysis = await _analysis(await _repository())
    return [group.model_dump(mode="json") for group in group_orphans_by_source(analysis.orphans)]


@orphans_router.get("/export")
async def export_orphans_csv():
    analysis = await _analysis(await _repository())
    return Response(
        content=orphans_to_csv(analysis.orphans),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="orphans.csv"'},
    )


# ── Bulk actions (registered before "/{record_id}/..." routes) ─────

@orphans_router.post("/bulk/archive")
async def bulk_archive(body: BulkReviewRequest):
    return await _bulk_action(
        lambda service: service.archive_many(body.ids, reviewer=body.reviewer, notes=body.notes)
    )


@orphans_router.post("/bulk/delete")
async def bulk_delete(body: BulkDeleteRequest):
    return await _bulk_action(
        lambda service: service.delete_many(body.ids, confirmation=body.confirmation, reviewer=body.reviewer)
    )


@orphans_router.post("/bulk/keep")
async def bulk_keep(body: BulkReviewRequest):
    return await _bulk_action(
        lambda service: service.mark_many_kept(body.ids, body.notes, reviewer=body.reviewer)
    )


# ── Single-record actions ───────────────────────────────────────────

@orphans_router.post("/{record_id}/archive")
async def archive_orphan(record_id: str, body: ReviewRequest | None = None):
    body = body or ReviewRequest()
    return await _single_action(
        lambda service: service.archive(record_id, reviewer=body.reviewer, notes=body.notes)
    )


@orphans_router.post("/{record_id}/keep")
async def keep_orphan(record_id: str, body: ReviewRequest | None = None):
    body = body or ReviewRequest()
    return await _single_action(
        lambda service: service.mark_kept(record_id, body.notes, reviewer=body.reviewer)
    )


@orphans_router.post("/{record_id}/undo-keep")
async def undo_keep_orphan(record_id: str, body: ReviewRequest | None = None):
    body = body or ReviewRequest()
    return await _single_action(lambda service: service.undo_keep(record_id, reviewer=body.reviewer))


@orphans_router.delete("/{record_id}")
async def delete_orphan(record_id: str, reviewer: str | None = Query(None)):
    return await _single_action(lambda service: service.delete(record_id, reviewer=reviewer))
