"""Tests for application wiring and remote restore."""

from decimal import Decimal

import pytest

from invest_tracker.audit import AuditLogger
from invest_tracker.config import get_settings
from invest_tracker.engine import LedgerEngine
from invest_tracker.models.audit import AuditEventBuilder
from invest_tracker.orchestrator import TrackerApp, create_app_components
from invest_tracker.services.storage import InMemorySnapshotStore
from invest_tracker.services.sync import SyncOutbox


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STORAGE_REMOTE_MIRROR_ENABLED", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _app(mirror, engine=None) -> TrackerApp:
    outbox = SyncOutbox()
    audit_logger = AuditLogger()
    engine = engine or LedgerEngine(
        snapshot_store=InMemorySnapshotStore(), outbox=outbox, audit_logger=audit_logger
    )
    return TrackerApp(engine, outbox, audit_logger, mirror=mirror)


class TestCreateAppComponents:
    def test_local_only(self):
        app = create_app_components(use_remote=False, snapshot_store=InMemorySnapshotStore())

        assert not app.has_mirror
        assert app.currency_symbol == "₱"
        assert not app.engine.is_setup_complete

    def test_loads_existing_snapshot(self, pool_engine):
        store = InMemorySnapshotStore(pool_engine.state.to_snapshot())

        app = create_app_components(use_remote=False, snapshot_store=store)

        assert app.engine.available_balance == Decimal("100000")

    def test_default_store_is_json_file(self, tmp_path):
        app = create_app_components(use_remote=False)
        app.engine.initialize_pool(10)

        assert (tmp_path / "data" / "investment-tracker-data.json").exists()

    def test_unconfigured_mirror_falls_back_to_local(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        app = create_app_components(use_remote=True, snapshot_store=InMemorySnapshotStore())

        assert not app.has_mirror

    @pytest.mark.asyncio
    async def test_sync_without_mirror_is_a_no_op(self):
        app = create_app_components(use_remote=False, snapshot_store=InMemorySnapshotStore())
        app.engine.initialize_pool(10)

        report = await app.sync()

        assert report.applied == 0
        assert report.succeeded


class TestRemoteRestore:
    """Tests for adopting the mirror's copy at startup."""

    @pytest.mark.asyncio
    async def test_restores_into_empty_engine(self, mirror, pool_engine, jan):
        pool_engine.add_investment(jan, 50000, "Juan")
        mirror.snapshot = pool_engine.state.to_snapshot()
        app = _app(mirror)

        assert await app.restore_from_remote()

        assert app.engine.available_balance == Decimal("50000")
        assert len(app.engine.investments) == 1
        assert len(app.outbox) == 0

    @pytest.mark.asyncio
    async def test_never_overwrites_local_data(self, mirror, pool_engine):
        mirror.snapshot = {"totalMoneyPool": "5"}
        app = _app(mirror, engine=pool_engine)

        assert not await app.restore_from_remote()
        assert app.engine.available_balance == Decimal("100000")

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_state(self, mirror):
        mirror.fail_on = "load_snapshot"
        app = _app(mirror)

        assert not await app.restore_from_remote()
        assert not app.engine.is_setup_complete

    @pytest.mark.asyncio
    async def test_sync_pushes_queue(self, mirror):
        app = _app(mirror)
        app.engine.initialize_pool(1000)

        report = await app.sync()

        assert report.applied == 2
        assert mirror.names == ["upsert_settings", "append_ledger_entry"]


class TestAuditTrail:
    """Tests for the session audit history and the activity log."""

    def test_session_events_are_capped(self):
        audit_logger = AuditLogger(max_events=3)
        engine = LedgerEngine(audit_logger=audit_logger)
        engine.initialize_pool(1000)
        for amount in (1, 2, 3, 4):
            engine.add_manual_transaction("2024-01-15", "Personal Expense", "x", amount)

        events = audit_logger.events

        assert len(events) == 3
        assert [e.details["amount"] for e in events] == ["₱2.00", "₱3.00", "₱4.00"]

    @pytest.mark.asyncio
    async def test_recent_events_from_session(self, mirror):
        app = _app(mirror)
        app.engine.initialize_pool(1000)
        app.engine.close_investment("missing")

        events = await app.recent_audit_events(limit=2)

        assert [e.event_type.value for e in events] == [
            "investment_close_skipped",
            "pool_initialized",
        ]

    @pytest.mark.asyncio
    async def test_recent_events_from_audit_sheet(self, mirror, audit_storage):
        app = _app(mirror)
        app.audit_storage = audit_storage
        await audit_storage.append_event(AuditEventBuilder.state_reset())

        events = await app.recent_audit_events()

        assert [e.event_type.value for e in events] == ["state_reset"]

    @pytest.mark.asyncio
    async def test_unreadable_audit_sheet_falls_back_to_session(self, mirror, audit_storage):
        app = _app(mirror)
        app.audit_storage = audit_storage
        audit_storage.fail = True
        app.engine.initialize_pool(1000)

        events = await app.recent_audit_events()

        assert events[0].event_type.value == "pool_initialized"
