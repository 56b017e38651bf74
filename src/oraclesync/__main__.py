"""
Main entrypoint: scheduler loop, one-off sync, and stale-run recovery.

FastAPI runs separately under uvicorn.

Usage:
    python -m oraclesync                  # starts the daily sync scheduler
    python -m oraclesync sync             # runs one sync now and exits
    python -m oraclesync abandon-stale    # fails runs left open by a crash
    uvicorn oraclesync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys
from datetime import timedelta

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_once() -> int:
    from oraclesync.db.engine import get_engine
    from oraclesync.scryfall.client import ScryfallClient
    from oraclesync.sync.service import CardSyncService, SyncConflictError

    engine = get_engine()
    async with ScryfallClient() as client:
        service = CardSyncService(client=client, engine=engine)
        try:
            run = await service.start_run()
        except SyncConflictError as exc:
            logger.error("%s", exc)
            return 1
    logger.info("Run %d finished with status %s", run.id, run.status.value)
    return 0


def _abandon_stale() -> None:
    from oraclesync.config import get_settings
    from oraclesync.db.engine import get_engine
    from oraclesync.sync.history import abandon_stale_runs

    settings = get_settings()
    count = abandon_stale_runs(
        get_engine(), older_than=timedelta(hours=settings.stale_run_hours)
    )
    logger.info("Abandoned %d stale sync run(s)", count)


async def _run_scheduler() -> None:
    from oraclesync.config import get_settings
    from oraclesync.db.engine import get_engine
    from oraclesync.scheduler.jobs import build_scheduler

    settings = get_settings()
    engine = get_engine()
    cancel_event = asyncio.Event()

    scheduler = build_scheduler(engine, cancel_event=cancel_event)
    scheduler.start()
    logger.info(
        "Scheduler started (daily card sync at %02d:00 UTC). Press Ctrl+C to stop.",
        settings.sync_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        cancel_event.set()
        scheduler.shutdown(wait=False)
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument
    command = sys.argv[1] if len(sys.argv) > 1 else None
    if command == "sync":
        sys.exit(asyncio.run(_run_once()))
    elif command == "abandon-stale":
        _abandon_stale()
    elif command is None:
        asyncio.run(_run_scheduler())
    else:
        print(f"Unknown command: {command}")
        print("Usage: python -m oraclesync [sync | abandon-stale]")
        sys.exit(2)
