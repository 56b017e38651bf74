"""
Diff engine: decides whether an incoming card is new, an update, or a repeat.

The whole existing population is loaded once, before the stream is read,
as oracle_id -> (card id, updated_at). Classification is then a dict lookup
per record instead of a database round trip per record.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Set

from sqlmodel import Session, select

from oraclesync.models.card import Card

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class ExistingCard:
    card_id: uuid.UUID
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class Classification:
    action: SyncAction
    card_id: Optional[uuid.UUID] = None  # set for UPDATE only


class DiffEngine:
    """Classifies source records against the stored cards, first occurrence wins."""

    def __init__(self, existing: Dict[uuid.UUID, ExistingCard]):
        self._existing = existing
        self._seen: Set[uuid.UUID] = set()

    @classmethod
    def load(cls, engine) -> "DiffEngine":
        """Build the lookup with a single query over every keyed card."""
        with Session(engine) as s:
            rows = s.exec(
                select(Card.oracle_id, Card.id, Card.updated_at).where(
                    Card.oracle_id.is_not(None)
                )
            ).all()
        existing = {
            oracle_id: ExistingCard(card_id=card_id, updated_at=updated_at)
            for oracle_id, card_id, updated_at in rows
        }
        logger.info("Loaded %d existing cards for diffing", len(existing))
        return cls(existing)

    def __len__(self) -> int:
        return len(self._existing)

    def lookup(self, external_key: uuid.UUID) -> Optional[ExistingCard]:
        return self._existing.get(external_key)

    def classify(self, external_key: Optional[uuid.UUID]) -> Classification:
        """
        Classify one record by its external key.

        Records without a key are always inserts and are not remembered.
        A key seen earlier in this run is a SKIP regardless of whether it
        exists in storage.
        """
        if external_key is None:
            return Classification(SyncAction.INSERT)

        if external_key in self._seen:
            return Classification(SyncAction.SKIP)
        self._seen.add(external_key)

        existing = self._existing.get(external_key)
        if existing is not None:
            return Classification(SyncAction.UPDATE, card_id=existing.card_id)
        return Classification(SyncAction.INSERT)
