"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
a local JSON snapshot as the primary store and Google Sheets as an optional
row mirror. Designed to be swappable.
"""

from invest_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerMirrorInterface,
    NotFoundError,
    SnapshotStoreInterface,
    StorageError,
)
from invest_tracker.services.storage.snapshot import (
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
)
from invest_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerMirror,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerMirrorInterface",
    "SnapshotStoreInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Local snapshot stores
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerMirror",
]
