"""
Batch writer: bounded insert/update queues flushed to the database.

Queues hold CardPayloads (plain dicts), never ORM objects. Each flush runs
in its own Session which is closed afterwards, so nothing the flush loaded
or created outlives it; memory scales with batch_size, not with the number
of records processed.

A batch the database rejects for a data reason (IntegrityError, DataError)
is rolled back and written again one card per session. Cards that fail on
their own come back as WriteFailures; the rest of the batch is kept. Any
other error propagates.

Flush results come back as BatchCounts values. The writer never touches the
run record itself; the orchestrator merges counts into its own counters.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from sqlalchemy.exc import DataError, IntegrityError
from sqlmodel import Session, delete, select

from oraclesync.models.card import Card, CardFace, RelatedCard
from oraclesync.models.sync import utcnow
from oraclesync.scryfall.normalizer import CardPayload

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# Errors that belong to the rows being written, not to the connection
ROW_ERRORS = (IntegrityError, DataError)


@dataclass
class WriteFailure:
    payload: CardPayload
    error: Exception


@dataclass
class BatchCounts:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failures: List[WriteFailure] = field(default_factory=list)

    def __add__(self, other: "BatchCounts") -> "BatchCounts":
        return BatchCounts(
            added=self.added + other.added,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            failures=self.failures + other.failures,
        )

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.added + self.updated + self.skipped + self.failed


class BatchWriter:
    """Accumulates classified cards and writes them in bounded batches."""

    def __init__(self, engine, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.engine = engine
        self.batch_size = batch_size
        self._inserts: List[CardPayload] = []
        self._updates: List[Tuple[uuid.UUID, CardPayload]] = []
        self.peak_pending = 0

    # ─── Queueing ────────────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        return len(self._inserts) + len(self._updates)

    def queue_insert(self, payload: CardPayload) -> None:
        self._inserts.append(payload)
        self._track_peak()

    def queue_update(self, card_id: uuid.UUID, payload: CardPayload) -> None:
        self._updates.append((card_id, payload))
        self._track_peak()

    def _track_peak(self) -> None:
        if self.pending > self.peak_pending:
            self.peak_pending = self.pending

    def discard(self) -> int:
        """Drop everything not yet flushed. Returns how many records were dropped."""
        dropped = self.pending
        self._inserts = []
        self._updates = []
        return dropped

    # ─── Flushing ────────────────────────────────────────────────────────────

    def flush_full(self) -> BatchCounts:
        """Flush whichever queues have reached batch_size."""
        counts = BatchCounts()
        if len(self._inserts) >= self.batch_size:
            counts += self.flush_inserts()
        if len(self._updates) >= self.batch_size:
            counts += self.flush_updates()
        return counts

    def flush_all(self) -> BatchCounts:
        """Flush both queues regardless of size (end of stream, checkpoints)."""
        return self.flush_inserts() + self.flush_updates()

    def flush_inserts(self) -> BatchCounts:
        """Insert every queued new card together with its faces and parts."""
        if not self._inserts:
            return BatchCounts()

        batch, self._inserts = self._inserts, []
        try:
            self._insert(batch)
        except ROW_ERRORS as exc:
            logger.warning(
                "Insert batch of %d cards rejected (%s), retrying one by one",
                len(batch),
                type(exc).__name__,
            )
            counts = BatchCounts()
            for payload in batch:
                try:
                    self._insert([payload])
                except ROW_ERRORS as row_exc:
                    counts.failures.append(WriteFailure(payload, row_exc))
                else:
                    counts.added += 1
            return counts

        logger.debug("Inserted batch of %d cards", len(batch))
        return BatchCounts(added=len(batch))

    def flush_updates(self) -> BatchCounts:
        """
        Refresh every queued existing card.

        Child rows of the touched cards are bulk-deleted first and recreated
        from the payload, so no stale collection state is ever merged. The
        parents are then reloaded (childless) and their scalar fields
        overwritten. Repeated ids keep their first occurrence; repeats and
        ids that no longer exist count as skipped.
        """
        if not self._updates:
            return BatchCounts()

        batch, self._updates = self._updates, []
        deduplicated: Dict[uuid.UUID, CardPayload] = {}
        for card_id, payload in batch:
            deduplicated.setdefault(card_id, payload)
        repeats = len(batch) - len(deduplicated)

        try:
            updated = self._update(deduplicated)
        except ROW_ERRORS as exc:
            logger.warning(
                "Update batch of %d cards rejected (%s), retrying one by one",
                len(deduplicated),
                type(exc).__name__,
            )
            counts = BatchCounts(skipped=repeats)
            for card_id, payload in deduplicated.items():
                try:
                    written = self._update({card_id: payload})
                except ROW_ERRORS as row_exc:
                    counts.failures.append(WriteFailure(payload, row_exc))
                else:
                    counts.updated += written
                    counts.skipped += 1 - written
            return counts

        skipped = repeats + len(deduplicated) - updated
        logger.debug("Updated batch of %d cards (%d skipped)", updated, skipped)
        return BatchCounts(updated=updated, skipped=skipped)

    def _insert(self, payloads: List[CardPayload]) -> None:
        with Session(self.engine) as s:
            s.add_all([_build_card(payload) for payload in payloads])
            s.commit()

    def _update(self, payloads: Dict[uuid.UUID, CardPayload]) -> int:
        """Write one session's worth of updates. Returns how many cards still existed."""
        card_ids = list(payloads)
        updated = 0
        with Session(self.engine) as s:
            s.exec(delete(CardFace).where(CardFace.card_id.in_(card_ids)))
            s.exec(delete(RelatedCard).where(RelatedCard.card_id.in_(card_ids)))

            cards = {
                card.id: card
                for card in s.exec(select(Card).where(Card.id.in_(card_ids))).all()
            }

            now = utcnow()
            for card_id, payload in payloads.items():
                card = cards.get(card_id)
                if card is None:
                    continue

                for name, value in payload.card_fields.items():
                    setattr(card, name, value)
                card.updated_at = now
                s.add(card)
                s.add_all(_build_children(card_id, payload))
                updated += 1

            s.commit()
        return updated


def _build_card(payload: CardPayload) -> Card:
    card = Card(**payload.card_fields)
    card.faces = [CardFace(**face) for face in payload.faces]
    card.related_cards = [RelatedCard(**part) for part in payload.related_cards]
    return card


def _build_children(card_id: uuid.UUID, payload: CardPayload) -> List:
    children: List = [CardFace(card_id=card_id, **face) for face in payload.faces]
    children.extend(RelatedCard(card_id=card_id, **part) for part in payload.related_cards)
    return children
