"""
Progress and error tracking for a sync run.

Counters live in a plain RunCounters value owned by the tracker; they are
written onto the SyncRun row only at checkpoints (every N processed records
and once at the end) to keep write amplification on the run row low.
Record-level failures are buffered as SyncError rows and written with the
next checkpoint.

The orchestrator flushes its writer before every checkpoint, so a persisted
run always satisfies added + updated + skipped + failed == processed.
"""
import logging
import traceback
from dataclasses import asdict, dataclass
from typing import Any, List

from sqlmodel import Session

from oraclesync.models.sync import SyncError, SyncRun
from oraclesync.scryfall.normalizer import describe_raw_record
from oraclesync.sync.writer import BatchCounts, WriteFailure

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_INTERVAL = 5000
DEFAULT_MAX_ERROR_LENGTH = 2000
MAX_STACK_TRACE_LENGTH = 4000


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


@dataclass
class RunCounters:
    total_in_source: int = 0
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def merge(self, counts: BatchCounts) -> None:
        self.added += counts.added
        self.updated += counts.updated
        self.skipped += counts.skipped

    @property
    def resolved(self) -> int:
        return self.added + self.updated + self.skipped + self.failed

    @property
    def outstanding(self) -> int:
        """Records pulled from the stream whose outcome is still queued."""
        return self.processed - self.resolved

    def as_dict(self) -> dict:
        return asdict(self)


class ProgressTracker:
    """Counts every record pulled from the stream and captures per-record errors."""

    def __init__(
        self,
        engine,
        run_id: int,
        *,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        max_error_length: int = DEFAULT_MAX_ERROR_LENGTH,
    ):
        self.engine = engine
        self.run_id = run_id
        self.checkpoint_interval = checkpoint_interval
        self.max_error_length = max_error_length
        self.counters = RunCounters()
        self._pending_errors: List[SyncError] = []
        self._last_checkpoint = 0

    def record_pulled(self) -> None:
        self.counters.total_in_source += 1
        self.counters.processed += 1

    def record_skipped(self) -> None:
        self.counters.skipped += 1

    def merge(self, counts: BatchCounts) -> None:
        """Add a flush's counts; cards the database rejected become failures."""
        self.counters.merge(counts)
        for failure in counts.failures:
            self.record_write_failure(failure)

    def record_failure(self, raw: Any, exc: BaseException) -> None:
        """Count a record that could not be classified and queue a SyncError."""
        external_key, name = describe_raw_record(raw)
        self._add_error(external_key, name, exc)

    def record_write_failure(self, failure: WriteFailure) -> None:
        payload = failure.payload
        external_key = str(payload.external_key) if payload.external_key else None
        self._add_error(external_key, payload.name[:300], failure.error)

    def _add_error(self, external_key, name, exc: BaseException) -> None:
        self.counters.failed += 1
        message = truncate(str(exc) or type(exc).__name__, self.max_error_length)
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._pending_errors.append(
            SyncError(
                run_id=self.run_id,
                external_key=external_key,
                record_name=name,
                error_message=message,
                stack_trace=truncate(stack, MAX_STACK_TRACE_LENGTH),
            )
        )
        logger.warning(
            "Record %d failed (oracle_id=%s, name=%s): %s",
            self.counters.processed,
            external_key,
            name,
            message.splitlines()[0] if message else "",
        )

    def discard(self, count: int) -> None:
        """Forget `count` records that were pulled but never written."""
        self.counters.processed -= count

    def discard_outstanding(self) -> int:
        """Roll every unresolved record out of `processed`. Returns how many."""
        outstanding = self.counters.outstanding
        self.discard(outstanding)
        return outstanding

    def checkpoint_due(self) -> bool:
        """True once checkpoint_interval records have passed since the last checkpoint."""
        return self.counters.processed - self._last_checkpoint >= self.checkpoint_interval

    def checkpoint(self, **run_fields) -> SyncRun:
        """
        Persist the counters and any buffered errors onto the run.

        Extra keyword arguments are applied to the run row in the same
        commit (used for the terminal status transition). Returns the
        refreshed run, detached from its session.
        """
        with Session(self.engine) as s:
            run = s.get(SyncRun, self.run_id)
            for name, value in self.counters.as_dict().items():
                setattr(run, name, value)
            for name, value in run_fields.items():
                setattr(run, name, value)
            s.add(run)
            s.add_all(self._pending_errors)
            s.commit()
            s.refresh(run)
        self._pending_errors = []
        self._last_checkpoint = self.counters.processed
        logger.info(
            "Checkpoint: %d processed (%d added, %d updated, %d skipped, %d failed)",
            self.counters.processed,
            self.counters.added,
            self.counters.updated,
            self.counters.skipped,
            self.counters.failed,
        )
        return run
