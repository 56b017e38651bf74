"""
CardSyncService: orchestrates one bulk synchronization run.

Flow:
  1. Refuse to start if another run is open (SyncConflictError)
  2. Create SyncRun (status="pending", holding the active slot)
  3. status="downloading": fetch bulk data metadata, store it on the run
  4. status="processing": load the existing oracle_id lookup, then stream
     the dataset through decoder -> diff -> batch writer. Both queues are
     flushed before each periodic checkpoint so the persisted counters
     always balance.
  5. Flush what is left, final checkpoint, status="completed"

On any exception after the run row exists: status="failed" with the error
message, then re-raise. A cancel_event set between records (or the task
being cancelled while awaiting the stream) ends the run as "cancelled".
Either way, records whose outcome was never written (queued, or part of the
flush that failed) are rolled out of the processed count.

Every terminal transition clears SyncRun.active_slot so the next run can
claim it.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from oraclesync.config import get_settings
from oraclesync.models.sync import ACTIVE_SLOT, SyncRun, SyncStatus, utcnow
from oraclesync.scryfall.normalizer import build_card_payload
from oraclesync.scryfall.schemas import BulkDataInfo
from oraclesync.sync.decoder import iter_source_records
from oraclesync.sync.diff import DiffEngine, SyncAction
from oraclesync.sync.history import is_run_active
from oraclesync.sync.tracker import ProgressTracker, truncate
from oraclesync.sync.writer import BatchWriter

logger = logging.getLogger(__name__)


class SyncConflictError(Exception):
    """Raised when a run is requested while another one is still open."""


class CardSyncService:
    """Runs Scryfall -> DB card synchronizations, at most one at a time."""

    def __init__(
        self,
        client,
        engine,
        *,
        batch_size: Optional[int] = None,
        checkpoint_interval: Optional[int] = None,
        error_message_max_length: Optional[int] = None,
    ):
        """
        Args:
            client: ScryfallClient instance (or a stand-in in tests).
            engine: SQLAlchemy engine (SQLModel create_engine result).
            batch_size: Records per insert/update flush. Defaults to settings.
            checkpoint_interval: Processed records between checkpoints.
            error_message_max_length: Truncation limit for stored messages.
        """
        settings = get_settings()
        self.client = client
        self.engine = engine
        self.batch_size = batch_size or settings.sync_batch_size
        self.checkpoint_interval = (
            checkpoint_interval or settings.sync_checkpoint_interval
        )
        self.error_message_max_length = (
            error_message_max_length or settings.error_message_max_length
        )

    def is_run_active(self) -> bool:
        with Session(self.engine) as s:
            return is_run_active(s)

    async def start_run(self, cancel_event: Optional[asyncio.Event] = None) -> SyncRun:
        """
        Execute one full synchronization run.

        Args:
            cancel_event: Optional event; once set, the run stops before the
                next record and ends as cancelled.

        Returns:
            Snapshot of the SyncRun in its terminal state.

        Raises:
            SyncConflictError: another run is open. No run row is created.
            Any exception from the provider, the decoder or a flush that
                fails for a reason other than the rows it wrote (after the
                run has been marked failed).
            asyncio.CancelledError: the task was cancelled (after the run
                has been marked cancelled).
        """
        run_id = self._create_run()
        logger.info("Sync run %d started", run_id)

        tracker = ProgressTracker(
            self.engine,
            run_id,
            checkpoint_interval=self.checkpoint_interval,
            max_error_length=self.error_message_max_length,
        )
        writer = BatchWriter(self.engine, self.batch_size)

        try:
            self._update_run(run_id, status=SyncStatus.DOWNLOADING)
            info = await self.client.get_bulk_data_info()
            logger.info(
                "Bulk data %s (%s): %d bytes, updated %s",
                info.type,
                info.id,
                info.size,
                info.updated_at.isoformat(),
            )
            self._record_metadata(run_id, info)
            self._update_run(run_id, status=SyncStatus.PROCESSING)

            diff = DiffEngine.load(self.engine)
            async with self.client.open_bulk_stream(info.download_uri) as stream:
                await self._process_stream(stream, diff, writer, tracker, cancel_event)

            if cancel_event is not None and cancel_event.is_set():
                return self._cancel(tracker, writer)

            tracker.merge(writer.flush_all())
            run = self._finish(tracker, SyncStatus.COMPLETED)
            logger.info(
                "Sync run %d completed: %d processed, %d added, %d updated, "
                "%d skipped, %d failed",
                run_id,
                run.processed,
                run.added,
                run.updated,
                run.skipped,
                run.failed,
            )
            return run

        except asyncio.CancelledError:
            self._cancel(tracker, writer)
            raise

        except Exception as exc:
            logger.exception("Sync run %d failed", run_id)
            writer.discard()
            tracker.discard_outstanding()
            self._finish(
                tracker,
                SyncStatus.FAILED,
                error_message=truncate(
                    str(exc) or type(exc).__name__, self.error_message_max_length
                ),
            )
            raise

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _create_run(self) -> int:
        with Session(self.engine) as s:
            if is_run_active(s):
                raise SyncConflictError("A sync run is already in progress")

            run = SyncRun(status=SyncStatus.PENDING, active_slot=ACTIVE_SLOT)
            s.add(run)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise SyncConflictError("A sync run is already in progress") from exc
            s.refresh(run)
            return run.id

    def _update_run(self, run_id: int, **fields) -> None:
        with Session(self.engine) as s:
            run = s.get(SyncRun, run_id)
            for name, value in fields.items():
                setattr(run, name, value)
            s.add(run)
            s.commit()
        if "status" in fields:
            logger.info("Sync run %d -> %s", run_id, fields["status"].value)

    def _record_metadata(self, run_id: int, info: BulkDataInfo) -> None:
        self._update_run(
            run_id,
            dataset_id=info.id,
            dataset_type=info.type,
            download_uri=info.download_uri,
            source_updated_at=info.updated_at,
            size_bytes=info.size,
        )

    async def _process_stream(
        self,
        stream,
        diff: DiffEngine,
        writer: BatchWriter,
        tracker: ProgressTracker,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        """Pull records until the stream ends or cancellation is requested."""
        async for raw in iter_source_records(stream):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Cancellation requested, stopping before next record")
                return

            tracker.record_pulled()
            try:
                payload = build_card_payload(raw)
                decision = diff.classify(payload.external_key)
            except Exception as exc:
                tracker.record_failure(raw, exc)
            else:
                if decision.action is SyncAction.SKIP:
                    tracker.record_skipped()
                elif decision.action is SyncAction.UPDATE:
                    writer.queue_update(decision.card_id, payload)
                else:
                    writer.queue_insert(payload)

            tracker.merge(writer.flush_full())
            if tracker.checkpoint_due():
                tracker.merge(writer.flush_all())
                tracker.checkpoint()

    def _cancel(self, tracker: ProgressTracker, writer: BatchWriter) -> SyncRun:
        writer.discard()
        dropped = tracker.discard_outstanding()
        run = self._finish(tracker, SyncStatus.CANCELLED)
        logger.info(
            "Sync run %d cancelled after %d records (%d unflushed dropped)",
            run.id,
            run.processed,
            dropped,
        )
        return run

    def _finish(
        self,
        tracker: ProgressTracker,
        status: SyncStatus,
        error_message: Optional[str] = None,
    ) -> SyncRun:
        """Final checkpoint plus the terminal transition, in one commit."""
        run = tracker.checkpoint(
            status=status,
            completed_at=utcnow(),
            active_slot=None,
            error_message=error_message,
        )
        logger.info("Sync run %d -> %s", run.id, status.value)
        return run
