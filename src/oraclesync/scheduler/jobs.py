"""
APScheduler jobs for background sync.

Scryfall regenerates its bulk files once a day; a daily run shortly after
keeps the local card table current. Manual runs go through the API
(POST /sync/trigger) and share the same single-flight guard.
"""
import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from oraclesync.config import get_settings

logger = logging.getLogger(__name__)

JOB_ID = "daily_card_sync"


def build_scheduler(engine, cancel_event: Optional[asyncio.Event] = None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync service.
        cancel_event: Passed through to each run; setting it stops a run
                      in progress (used on shutdown).

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        _daily_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        kwargs={"engine": engine, "cancel_event": cancel_event},
    )

    return scheduler


async def _daily_sync(engine, cancel_event: Optional[asyncio.Event] = None) -> None:
    """
    Daily job: one full card sync.

    Never raises. The scheduler has to survive a failed run; the failure
    itself is already recorded on the SyncRun row.
    """
    from oraclesync.scryfall.client import ScryfallClient
    from oraclesync.sync.service import CardSyncService, SyncConflictError

    logger.info("Daily card sync starting")

    try:
        async with ScryfallClient() as client:
            service = CardSyncService(client=client, engine=engine)
            run = await service.start_run(cancel_event=cancel_event)
            logger.info("Daily card sync finished: run %d %s", run.id, run.status.value)

    except SyncConflictError:
        logger.warning("Daily card sync skipped: another run is in progress")

    except Exception as exc:
        logger.error("Daily card sync failed: %s", exc)
