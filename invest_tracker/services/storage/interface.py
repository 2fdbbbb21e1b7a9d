"""
Abstract Storage Interfaces

DESIGN DECISION: The engine talks to two kinds of storage:

1. A snapshot store holding the whole state as one document. It is local,
   synchronous and written after every mutation.
2. A row mirror holding the same data as five tables (settings,
   investments, returns, manual_transactions, ledger). It is remote and
   asynchronous, fed in order by the sync outbox. It is a best-effort copy;
   the in-memory state stays authoritative.

Both are abstract so that the JSON file / Google Sheets backends can be
swapped for in-memory fakes in tests or a real database later.
"""

from abc import ABC, abstractmethod
from typing import Optional

from invest_tracker.models.audit import AuditEvent
from invest_tracker.models.ledger import (
    Investment,
    LedgerEntry,
    ManualTransaction,
    PoolSettings,
    ReturnRecord,
)


class SnapshotStoreInterface(ABC):
    """Whole-state snapshot storage."""

    @abstractmethod
    def load(self) -> Optional[dict]:
        """
        Load the stored snapshot.

        Returns:
            The snapshot dict, or None if nothing has been stored yet

        Raises:
            StorageError: If the stored snapshot cannot be read
        """
        pass

    @abstractmethod
    def save(self, snapshot: dict) -> None:
        """
        Replace the stored snapshot.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored snapshot. Clearing an empty store is not an error."""
        pass


class LedgerMirrorInterface(ABC):
    """
    Row-oriented remote copy of the tracker state.

    Each method maps to one row operation on one table.
    """

    @abstractmethod
    async def upsert_settings(
        self,
        total_money_pool: str,
        settings: PoolSettings,
    ) -> None:
        """Write the single settings row."""
        pass

    @abstractmethod
    async def insert_investment(self, investment: Investment) -> None:
        pass

    @abstractmethod
    async def update_investment(self, investment: Investment) -> None:
        """
        Update an existing investment row.

        Raises:
            NotFoundError: If the investment row doesn't exist
        """
        pass

    @abstractmethod
    async def insert_return(self, record: ReturnRecord) -> None:
        pass

    @abstractmethod
    async def insert_manual_transaction(self, transaction: ManualTransaction) -> None:
        pass

    @abstractmethod
    async def append_ledger_entry(self, entry: LedgerEntry) -> None:
        pass

    @abstractmethod
    async def clear_ledger(self) -> None:
        """Remove all ledger rows (used when the pool is re-initialized)."""
        pass

    @abstractmethod
    async def clear_all(self) -> None:
        """Remove every row from every table."""
        pass

    @abstractmethod
    async def load_snapshot(self) -> Optional[dict]:
        """
        Rebuild a snapshot dict from the stored rows.

        Ledger rows are ordered by date. Returns None if the mirror
        holds no settings row.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> None:
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations (a persistence failure)."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
