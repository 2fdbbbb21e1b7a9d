"""
Application Wiring

Builds the ledger engine together with its collaborators:
- the local JSON snapshot (always)
- the Google Sheets mirror and audit sheet (when enabled and configured)
- the sync outbox that feeds the mirror
- the audit logger

DESIGN DECISION: The local snapshot is the primary store and the engine's
in-memory state is authoritative. The mirror only ever receives what the
outbox hands it, in order. If the mirror cannot be set up the tracker keeps
working locally.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from invest_tracker.audit import AuditLogger, configure_logging
from invest_tracker.config import get_settings
from invest_tracker.engine import LedgerEngine
from invest_tracker.models.audit import AuditEvent, AuditEventBuilder
from invest_tracker.models.ledger import TrackerState
from invest_tracker.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerMirror,
    JsonFileSnapshotStore,
    LedgerMirrorInterface,
    SnapshotStoreInterface,
    StorageError,
)
from invest_tracker.services.sync import SyncOutbox, SyncReport


logger = structlog.get_logger(__name__)


class TrackerApp:
    """
    The engine plus the remote side of persistence.

    The UI calls engine operations directly and calls ``sync()`` after
    them to push queued writes to the mirror.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        outbox: SyncOutbox,
        audit_logger: AuditLogger,
        mirror: Optional[LedgerMirrorInterface] = None,
        audit_storage: Optional[AuditStorageInterface] = None,
        currency_symbol: str = "₱",
    ):
        self.engine = engine
        self.outbox = outbox
        self.audit_logger = audit_logger
        self.mirror = mirror
        self.audit_storage = audit_storage
        self.currency_symbol = currency_symbol

    @property
    def has_mirror(self) -> bool:
        return self.mirror is not None

    async def sync(self) -> SyncReport:
        """
        Push queued operations to the mirror.

        Without a mirror the queue is left alone and nothing is reported.
        """
        if self.mirror is None:
            return SyncReport(pending=len(self.outbox))

        report = await self.outbox.flush(self.mirror, self.audit_storage)
        if report.applied or report.error:
            # Logged locally only; queuing it would feed the outbox forever
            event = AuditEventBuilder.sync_finished(
                report.applied, report.pending, report.error
            )
            logger.info("sync_finished", **event.to_log_dict())
        return report

    async def recent_audit_events(self, limit: int = 20) -> list[AuditEvent]:
        """
        Latest audit events, newest first.

        Read from the AuditLog sheet when there is one, otherwise (or if
        the sheet cannot be read) from this session's events.
        """
        if self.audit_storage is not None:
            try:
                return await self.audit_storage.get_recent_events(limit)
            except StorageError as e:
                logger.warning("audit_events_unavailable", error=str(e))

        return list(reversed(self.audit_logger.events))[:limit]

    async def restore_from_remote(self) -> bool:
        """
        Replace an empty local state with the mirror's copy.

        Returns True if a remote snapshot was loaded. A non-empty local
        state is never overwritten.
        """
        if self.mirror is None or self.engine.state.transactions:
            return False

        try:
            snapshot = await self.mirror.load_snapshot()
            if not snapshot:
                return False
            state = TrackerState.from_snapshot(snapshot)
        except (StorageError, ValidationError) as e:
            self.audit_logger.log_persistence_failed("google_sheets", str(e))
            return False

        self.engine.restore(state)
        self.audit_logger.log(
            AuditEventBuilder.state_loaded("google_sheets", len(state.transactions))
        )
        return True


def create_app_components(
    use_remote: Optional[bool] = None,
    snapshot_store: Optional[SnapshotStoreInterface] = None,
) -> TrackerApp:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to set up the Google Sheets mirror.
                    None means "use STORAGE_REMOTE_MIRROR_ENABLED".
        snapshot_store: Override the local store (tests).

    Returns:
        A TrackerApp with the engine loaded from the snapshot
    """
    settings = get_settings()
    app_settings = settings.app
    storage_settings = settings.storage

    configure_logging(app_settings.debug_mode)

    if use_remote is None:
        use_remote = storage_settings.remote_mirror_enabled

    outbox = SyncOutbox()
    mirror = None
    audit_storage = None

    if use_remote:
        try:
            sheets_client = GoogleSheetsClient()
            mirror = GoogleSheetsLedgerMirror(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Mirror not configured - continue locally
            logger.warning("remote_mirror_unavailable", error=str(e))
            mirror = None
            audit_storage = None

    # Audit events only go through the outbox when there is a sheet for them
    audit_logger = AuditLogger(outbox if audit_storage is not None else None)

    if snapshot_store is None:
        snapshot_store = JsonFileSnapshotStore(storage_settings.snapshot_path)

    engine = LedgerEngine.load(
        snapshot_store,
        outbox=outbox if mirror is not None else None,
        audit_logger=audit_logger,
        currency_symbol=app_settings.currency_symbol,
    )

    return TrackerApp(
        engine=engine,
        outbox=outbox,
        audit_logger=audit_logger,
        mirror=mirror,
        audit_storage=audit_storage,
        currency_symbol=app_settings.currency_symbol,
    )
