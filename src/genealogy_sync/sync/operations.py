"""Registry of long-running operations with cooperative cancellation."""
from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from ..errors import SyncAlreadyRunningError
from ..models.sync import ProgressEvent

logger = structlog.get_logger(__name__)


@dataclass
class Operation:
    id: str
    db_id: str
    kind: str = "sync"
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    cancel_requested: bool = False
    progress: ProgressEvent | None = None


class OperationRegistry:
    """Tracks active operations; at most one per database.

    Cancellation is a flag the running operation polls; requesting it never
    interrupts work in flight.
    """

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}
        self._active_by_db: dict[str, str] = {}
        self._counter = itertools.count(1)

    def generate_id(self, prefix: str = "sync") -> str:
        return f"{prefix}-{int(time.time() * 1000)}-{next(self._counter)}"

    def start(self, db_id: str, kind: str = "sync") -> Operation:
        """Register a new operation for ``db_id``.

        Raises:
            SyncAlreadyRunningError: another operation is active for the database.
        """
        active = self._active_by_db.get(db_id)
        if active is not None:
            raise SyncAlreadyRunningError(db_id, active)
        op = Operation(id=self.generate_id(kind), db_id=db_id, kind=kind)
        self._operations[op.id] = op
        self._active_by_db[db_id] = op.id
        logger.info("operation.start", operation_id=op.id, db_id=db_id, kind=kind)
        return op

    def finish(self, operation_id: str) -> None:
        op = self._operations.pop(operation_id, None)
        if op is not None and self._active_by_db.get(op.db_id) == operation_id:
            del self._active_by_db[op.db_id]
            logger.info("operation.finish", operation_id=operation_id, db_id=op.db_id)

    def get(self, operation_id: str) -> Operation | None:
        return self._operations.get(operation_id)

    def request_cancel(self, operation_id: str) -> bool:
        """Flag an active operation for cancellation; False if it is not active."""
        op = self._operations.get(operation_id)
        if op is None:
            return False
        op.cancel_requested = True
        logger.info("operation.cancel_requested", operation_id=operation_id)
        return True

    def is_cancelled(self, operation_id: str) -> bool:
        op = self._operations.get(operation_id)
        return op is not None and op.cancel_requested

    def is_running(self, db_id: str | None = None) -> bool:
        return self.active(db_id) is not None

    def active(self, db_id: str | None = None) -> Operation | None:
        if db_id is not None:
            op_id = self._active_by_db.get(db_id)
            return self._operations.get(op_id) if op_id else None
        for op_id in self._active_by_db.values():
            return self._operations.get(op_id)
        return None

    def active_id(self, db_id: str | None = None) -> str | None:
        op = self.active(db_id)
        return op.id if op else None

    def update_progress(self, operation_id: str, event: ProgressEvent) -> None:
        op = self._operations.get(operation_id)
        if op is not None:
            op.progress = event
