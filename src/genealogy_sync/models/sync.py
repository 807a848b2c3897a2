"""Sync run progress models."""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class ProgressEventType(str, Enum):
    STARTED = "started"
    QUEUE_BUILT = "queue_built"
    PERSON_STARTED = "person_started"
    STEP_COMPLETE = "step_complete"
    PERSON_COMPLETE = "person_complete"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (ProgressEventType.COMPLETED, ProgressEventType.CANCELLED, ProgressEventType.ERROR)


class SyncStep(str, Enum):
    ENSURE_RECORD = "ensure_record"
    PROCESS_HINTS = "process_hints"
    DOWNLOAD_DATA = "download_data"
    QUEUE_PARENTS = "queue_parents"


class SyncStats(BaseModel):
    records_linked: int = 0
    hints_processed: int = 0
    data_downloaded: int = 0
    parents_queued: int = 0
    skipped: int = 0
    errors: int = 0


class QueuedPerson(BaseModel):
    person_id: str
    generation: int = Field(ge=0)


class HintResult(BaseModel):
    """What a hint processor reports for one person."""

    hints_found: int = 0
    hints_processed: int = 0
    errors: int = 0


class ProgressEvent(BaseModel):
    """One step of a sync run. ``stats`` is a snapshot, never a live reference."""

    type: ProgressEventType
    operation_id: str | None = None
    processed_count: int = 0
    total_count: int = 0
    current_generation: int = 0
    max_generations: int = 0
    current_person_id: str | None = None
    current_person_name: str | None = None
    step: SyncStep | None = None
    stats: SyncStats = Field(default_factory=SyncStats)
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SyncStatus(BaseModel):
    running: bool
    operation_id: str | None = None
    progress: ProgressEvent | None = None
