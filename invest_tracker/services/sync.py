"""
Ordered Sync Outbox

DESIGN DECISION: The in-memory state is the source of truth. Every
mutation enqueues the row operations that mirror it remotely, and the
outbox applies them strictly in the order they were produced.

If an operation fails, flushing stops there. The failed operation and
everything after it stay queued for the next flush, so the remote copy
may lag behind but never receives operations out of order.
"""

import threading
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from invest_tracker.models.ledger import utc_now
from invest_tracker.services.storage.interface import (
    AuditStorageInterface,
    LedgerMirrorInterface,
)


logger = structlog.get_logger(__name__)


class SyncOperationKind(str, Enum):
    """Row operations understood by the mirror."""
    UPSERT_SETTINGS = "upsert_settings"
    INSERT_INVESTMENT = "insert_investment"
    UPDATE_INVESTMENT = "update_investment"
    INSERT_RETURN = "insert_return"
    INSERT_MANUAL_TRANSACTION = "insert_manual_transaction"
    APPEND_LEDGER_ENTRY = "append_ledger_entry"
    CLEAR_LEDGER = "clear_ledger"
    CLEAR_ALL = "clear_all"
    APPEND_AUDIT_EVENT = "append_audit_event"


class SyncOperation(BaseModel):
    """One pending mirror write."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: SyncOperationKind
    payload: Any = None
    created_at: datetime = Field(default_factory=utc_now)


class SyncReport(BaseModel):
    """Outcome of a flush."""

    applied: int = 0
    pending: int = 0
    skipped: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class SyncOutbox:
    """
    FIFO queue of mirror operations.

    Enqueueing is thread-safe. Only one flush runs at a time; a flush
    started while another is in progress returns immediately.
    """

    def __init__(self):
        self._queue: deque[SyncOperation] = deque()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def enqueue(self, kind: SyncOperationKind, payload: Any = None) -> SyncOperation:
        operation = SyncOperation(kind=kind, payload=payload)
        with self._lock:
            self._queue.append(operation)
        return operation

    def extend(self, operations: Iterable[SyncOperation]) -> None:
        with self._lock:
            self._queue.extend(operations)

    def pending(self) -> list[SyncOperation]:
        """Snapshot of the queued operations, oldest first."""
        with self._lock:
            return list(self._queue)

    def _peek(self) -> Optional[SyncOperation]:
        with self._lock:
            return self._queue[0] if self._queue else None

    def _pop(self) -> None:
        with self._lock:
            self._queue.popleft()

    async def flush(
        self,
        mirror: LedgerMirrorInterface,
        audit_storage: Optional[AuditStorageInterface] = None,
    ) -> SyncReport:
        """
        Apply queued operations to the mirror in order.

        Never raises for mirror failures; the error is logged and
        reported, and the failed operation stays at the head of the queue.
        """
        if not self._flush_lock.acquire(blocking=False):
            return SyncReport(pending=len(self), error="flush already in progress")

        report = SyncReport()
        try:
            while True:
                operation = self._peek()
                if operation is None:
                    break

                if (
                    operation.kind == SyncOperationKind.APPEND_AUDIT_EVENT
                    and audit_storage is None
                ):
                    # No audit sheet configured
                    self._pop()
                    report.skipped += 1
                    continue

                try:
                    await _apply(operation, mirror, audit_storage)
                except Exception as e:
                    report.error = f"{operation.kind.value}: {e}"
                    logger.error(
                        "sync_operation_failed",
                        kind=operation.kind.value,
                        error=str(e),
                    )
                    break

                self._pop()
                report.applied += 1
        finally:
            report.pending = len(self)
            self._flush_lock.release()

        return report


async def _apply(
    operation: SyncOperation,
    mirror: LedgerMirrorInterface,
    audit_storage: Optional[AuditStorageInterface],
) -> None:
    kind = operation.kind
    payload = operation.payload

    if kind == SyncOperationKind.UPSERT_SETTINGS:
        total_money_pool, settings = payload
        await mirror.upsert_settings(total_money_pool, settings)
    elif kind == SyncOperationKind.INSERT_INVESTMENT:
        await mirror.insert_investment(payload)
    elif kind == SyncOperationKind.UPDATE_INVESTMENT:
        await mirror.update_investment(payload)
    elif kind == SyncOperationKind.INSERT_RETURN:
        await mirror.insert_return(payload)
    elif kind == SyncOperationKind.INSERT_MANUAL_TRANSACTION:
        await mirror.insert_manual_transaction(payload)
    elif kind == SyncOperationKind.APPEND_LEDGER_ENTRY:
        await mirror.append_ledger_entry(payload)
    elif kind == SyncOperationKind.CLEAR_LEDGER:
        await mirror.clear_ledger()
    elif kind == SyncOperationKind.CLEAR_ALL:
        await mirror.clear_all()
    elif kind == SyncOperationKind.APPEND_AUDIT_EVENT:
        await audit_storage.append_event(payload)
    else:
        raise ValueError(f"Unknown sync operation: {kind}")
