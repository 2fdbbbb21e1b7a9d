"""Services package."""

from invest_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerMirror,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    LedgerMirrorInterface,
    NotFoundError,
    SnapshotStoreInterface,
    StorageError,
)
from invest_tracker.services.sync import (
    SyncOperation,
    SyncOperationKind,
    SyncOutbox,
    SyncReport,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerMirror",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "LedgerMirrorInterface",
    "NotFoundError",
    "SnapshotStoreInterface",
    "StorageError",
    # Sync
    "SyncOperation",
    "SyncOperationKind",
    "SyncOutbox",
    "SyncReport",
]
