"""Sync run audit models: one SyncRun per attempt, one SyncError per failed record."""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SyncStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = (SyncStatus.PENDING, SyncStatus.DOWNLOADING, SyncStatus.PROCESSING)
TERMINAL_STATUSES = (SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED)

# Value held in SyncRun.active_slot while a run is non-terminal. The column is
# unique, so the database refuses a second open run.
ACTIVE_SLOT = 1


class SyncRun(SQLModel, table=True):
    """Records each bulk sync attempt for audit, progress and statistics."""

    id: Optional[int] = Field(default=None, primary_key=True)
    started_at: datetime = Field(default_factory=utcnow, index=True)
    completed_at: Optional[datetime] = None
    status: SyncStatus = Field(default=SyncStatus.PENDING, index=True)
    active_slot: Optional[int] = Field(default=ACTIVE_SLOT, unique=True)

    # Source metadata (filled in once the bulk data info has been fetched)
    dataset_id: Optional[str] = Field(default=None, max_length=100)
    dataset_type: Optional[str] = Field(default=None, max_length=50)
    download_uri: Optional[str] = Field(default=None, max_length=500)
    source_updated_at: Optional[datetime] = None
    size_bytes: Optional[int] = None

    # Progress counters
    total_in_source: int = 0
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    error_message: Optional[str] = Field(default=None, max_length=2000)

    errors: List["SyncError"] = Relationship(
        back_populates="run",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class SyncError(SQLModel, table=True):
    """One row per record that could not be imported during a run."""

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="syncrun.id", index=True, ondelete="CASCADE")
    external_key: Optional[str] = Field(default=None, max_length=64, index=True)
    record_name: Optional[str] = Field(default=None, max_length=300)
    error_message: str = Field(max_length=2000)
    stack_trace: Optional[str] = Field(default=None, max_length=4000)
    created_at: datetime = Field(default_factory=utcnow)

    run: Optional[SyncRun] = Relationship(back_populates="errors")
