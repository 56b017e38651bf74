"""Sync trigger, status and history routes."""
import logging
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from oraclesync.db.engine import get_engine, get_session
from oraclesync.models.sync import SyncError, SyncRun, SyncStatus
from oraclesync.scryfall.client import ScryfallClient
from oraclesync.sync import history
from oraclesync.sync.service import CardSyncService, SyncConflictError

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PAGE_SIZE = 100


class RunSummary(BaseModel):
    id: int
    status: SyncStatus
    started_at: datetime
    completed_at: Optional[datetime]
    dataset_type: Optional[str]
    source_updated_at: Optional[datetime]
    total_in_source: int
    processed: int
    added: int
    updated: int
    skipped: int
    failed: int
    error_message: Optional[str]
    duration_seconds: Optional[float]


class RunErrorResponse(BaseModel):
    id: int
    external_key: Optional[str]
    record_name: Optional[str]
    error_message: str
    stack_trace: Optional[str]
    created_at: datetime


class RunDetail(RunSummary):
    dataset_id: Optional[str]
    download_uri: Optional[str]
    size_bytes: Optional[int]
    errors: List[RunErrorResponse]


class HistoryResponse(BaseModel):
    runs: List[RunSummary]
    total: int
    page: int
    page_size: int


class StatusResponse(BaseModel):
    is_running: bool
    latest: Optional[RunSummary]


class RunStatsResponse(BaseModel):
    total_runs: int
    successful_runs: int
    failed_runs: int
    total_added: int
    total_updated: int
    last_run_at: Optional[datetime]
    average_duration_seconds: Optional[float]


def _summary(run: SyncRun) -> RunSummary:
    return RunSummary(
        id=run.id,
        status=run.status,
        started_at=run.started_at,
        completed_at=run.completed_at,
        dataset_type=run.dataset_type,
        source_updated_at=run.source_updated_at,
        total_in_source=run.total_in_source,
        processed=run.processed,
        added=run.added,
        updated=run.updated,
        skipped=run.skipped,
        failed=run.failed,
        error_message=run.error_message,
        duration_seconds=history.duration_seconds(run),
    )


def _error(error: SyncError) -> RunErrorResponse:
    return RunErrorResponse(
        id=error.id,
        external_key=error.external_key,
        record_name=error.record_name,
        error_message=error.error_message,
        stack_trace=error.stack_trace,
        created_at=error.created_at,
    )


async def _do_sync() -> None:
    """Background task: run one full card sync."""
    engine = get_engine()
    async with ScryfallClient() as client:
        service = CardSyncService(client=client, engine=engine)
        try:
            await service.start_run()
        except SyncConflictError:
            logger.warning("Sync already in progress, triggered run skipped")
        except Exception as exc:
            # Already recorded on the run row by the service
            logger.error("Triggered sync failed: %s", exc)


@router.post("/trigger", status_code=202)
def trigger_sync(
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    Start a sync in the background.
    Returns 409 if a run is already in progress.
    """
    if history.is_run_active(session):
        raise HTTPException(status_code=409, detail="A sync run is already in progress")
    background_tasks.add_task(_do_sync)
    return {"message": "Sync started"}


@router.get("/status", response_model=StatusResponse)
def sync_status(session: Session = Depends(get_session)):
    """Whether a run is in progress, plus the most recent run."""
    run = history.latest_run(session)
    return StatusResponse(
        is_running=history.is_run_active(session),
        latest=_summary(run) if run else None,
    )


@router.get("/history", response_model=HistoryResponse)
def sync_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20),
    session: Session = Depends(get_session),
):
    """Runs newest first. page_size is clamped to 1..100."""
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    runs, total = history.list_runs(session, page=page, page_size=page_size)
    return HistoryResponse(
        runs=[_summary(r) for r in runs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/latest", response_model=RunSummary)
def latest_sync(session: Session = Depends(get_session)):
    run = history.latest_run(session)
    if not run:
        raise HTTPException(status_code=404, detail="No sync runs recorded")
    return _summary(run)


@router.get("/stats", response_model=RunStatsResponse)
def sync_stats(session: Session = Depends(get_session)):
    stats = history.run_stats(session)
    return RunStatsResponse(**asdict(stats))


@router.get("/runs/{run_id}", response_model=RunDetail)
def sync_run_detail(run_id: int, session: Session = Depends(get_session)):
    """A single run with every record-level error it captured."""
    run = history.get_run(session, run_id)
    if not run:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} not found")
    summary = _summary(run)
    return RunDetail(
        **summary.model_dump(),
        dataset_id=run.dataset_id,
        download_uri=run.download_uri,
        size_bytes=run.size_bytes,
        errors=[_error(e) for e in history.list_run_errors(session, run_id)],
    )
