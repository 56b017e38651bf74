"""
Run history queries: listing, detail, aggregate stats and stale-run recovery.

Read-only helpers take an open Session so the API can use them through its
session dependency; abandon_stale_runs writes and owns its session.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from oraclesync.models.sync import (
    ACTIVE_STATUSES,
    SyncError,
    SyncRun,
    SyncStatus,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

ABANDONED_MESSAGE = "Run abandoned: still {status} after {hours:.1f}h"


@dataclass
class RunStats:
    total_runs: int
    successful_runs: int
    failed_runs: int
    total_added: int
    total_updated: int
    last_run_at: Optional[datetime]
    average_duration_seconds: Optional[float]


def is_run_active(session: Session) -> bool:
    """True iff some run has not reached a terminal status."""
    run_id = session.exec(
        select(SyncRun.id).where(SyncRun.status.in_(ACTIVE_STATUSES)).limit(1)
    ).first()
    return run_id is not None


def list_runs(
    session: Session, page: int = 1, page_size: int = 20
) -> Tuple[List[SyncRun], int]:
    """Return one page of runs, newest first, plus the total run count."""
    page = max(page, 1)
    total = session.exec(select(func.count()).select_from(SyncRun)).one()
    runs = session.exec(
        select(SyncRun)
        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(runs), total


def latest_run(session: Session) -> Optional[SyncRun]:
    return session.exec(
        select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
    ).first()


def get_run(session: Session, run_id: int) -> Optional[SyncRun]:
    return session.get(SyncRun, run_id)


def list_run_errors(session: Session, run_id: int) -> List[SyncError]:
    return list(
        session.exec(
            select(SyncError)
            .where(SyncError.run_id == run_id)
            .order_by(SyncError.id)
        ).all()
    )


def duration_seconds(run: SyncRun) -> Optional[float]:
    """Wall-clock duration of a finished run, None while it is still open."""
    if run.completed_at is None:
        return None
    started = ensure_utc(run.started_at)
    completed = ensure_utc(run.completed_at)
    return (completed - started).total_seconds()


def run_stats(session: Session) -> RunStats:
    """
    Aggregate figures over every recorded run.

    The average duration only covers completed runs; failed and cancelled
    runs stop early and would skew it.
    """
    runs = session.exec(select(SyncRun)).all()

    completed = [r for r in runs if r.status == SyncStatus.COMPLETED]
    durations = [d for d in (duration_seconds(r) for r in completed) if d is not None]
    last_run_at = max((ensure_utc(r.started_at) for r in runs), default=None)

    return RunStats(
        total_runs=len(runs),
        successful_runs=len(completed),
        failed_runs=sum(1 for r in runs if r.status == SyncStatus.FAILED),
        total_added=sum(r.added for r in runs),
        total_updated=sum(r.updated for r in runs),
        last_run_at=last_run_at,
        average_duration_seconds=(
            sum(durations) / len(durations) if durations else None
        ),
    )


def abandon_stale_runs(engine, older_than: timedelta) -> int:
    """
    Mark runs stuck in a non-terminal status as failed.

    A process crash leaves its run open and holding the active slot, which
    blocks every later start. Runs started more than `older_than` ago are
    closed out so a new run can begin.

    Returns:
        Number of runs abandoned.
    """
    now = utcnow()
    cutoff = now - older_than
    abandoned = 0

    with Session(engine) as s:
        open_runs = s.exec(
            select(SyncRun).where(SyncRun.status.in_(ACTIVE_STATUSES))
        ).all()
        for run in open_runs:
            if ensure_utc(run.started_at) > cutoff:
                continue
            age_hours = (now - ensure_utc(run.started_at)).total_seconds() / 3600
            logger.warning(
                "Abandoning sync run %d (status=%s, started %s)",
                run.id,
                run.status.value,
                run.started_at.isoformat(),
            )
            run.error_message = ABANDONED_MESSAGE.format(
                status=run.status.value, hours=age_hours
            )
            run.status = SyncStatus.FAILED
            run.completed_at = now
            run.active_slot = None
            s.add(run)
            abandoned += 1
        s.commit()

    return abandoned
