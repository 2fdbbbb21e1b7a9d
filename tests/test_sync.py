"""Tests for the ordered sync outbox."""

from decimal import Decimal

import pytest

from invest_tracker.audit import AuditLogger
from invest_tracker.engine import InvalidAmountError, LedgerEngine
from invest_tracker.models.audit import AuditEventBuilder
from invest_tracker.services.sync import SyncOperationKind


@pytest.fixture
def mirrored_engine(snapshot_store, outbox):
    return LedgerEngine(snapshot_store=snapshot_store, outbox=outbox)


class TestOutboxQueueing:
    """Tests for what the engine puts on the outbox."""

    def test_initialize_pool_operations(self, mirrored_engine, outbox):
        mirrored_engine.initialize_pool(1000)

        kinds = [op.kind for op in outbox.pending()]
        assert kinds == [
            SyncOperationKind.UPSERT_SETTINGS,
            SyncOperationKind.APPEND_LEDGER_ENTRY,
        ]
        total, settings = outbox.pending()[0].payload
        assert total == "1000"
        assert settings.setup_complete

    def test_reinitialize_clears_remote_ledger(self, mirrored_engine, outbox):
        mirrored_engine.initialize_pool(1000)
        mirrored_engine.initialize_pool(2000)

        kinds = [op.kind for op in outbox.pending()][2:]
        assert kinds == [
            SyncOperationKind.UPSERT_SETTINGS,
            SyncOperationKind.CLEAR_LEDGER,
            SyncOperationKind.APPEND_LEDGER_ENTRY,
        ]

    def test_close_updates_investment_row(self, mirrored_engine, outbox, jan):
        mirrored_engine.initialize_pool(1000)
        investment = mirrored_engine.add_investment(jan, 100, "x")
        mirrored_engine.close_investment(investment.id)

        update = outbox.pending()[-2]
        assert update.kind == SyncOperationKind.UPDATE_INVESTMENT
        assert update.payload.status.value == "Closed"

    def test_rejected_operation_queues_nothing(self, mirrored_engine, outbox, jan):
        mirrored_engine.initialize_pool(1000)
        queued = len(outbox)

        with pytest.raises(InvalidAmountError):
            mirrored_engine.add_investment(jan, -5, "x")

        assert len(outbox) == queued

    def test_restore_queues_nothing(self, mirrored_engine, outbox, pool_engine):
        mirrored_engine.restore(pool_engine.state)
        assert len(outbox) == 0
        assert mirrored_engine.available_balance == Decimal("100000")


class TestFlush:
    """Tests for applying queued operations to the mirror."""

    @pytest.mark.asyncio
    async def test_flush_applies_in_order(self, mirrored_engine, outbox, mirror, jan):
        mirrored_engine.initialize_pool(1000)
        investment = mirrored_engine.add_investment(jan, 100, "x")
        mirrored_engine.record_return(jan, 10, investment.id)

        report = await outbox.flush(mirror)

        assert report.succeeded
        assert report.applied == 6
        assert report.pending == 0
        assert mirror.names == [
            "upsert_settings",
            "append_ledger_entry",
            "insert_investment",
            "append_ledger_entry",
            "insert_return",
            "append_ledger_entry",
        ]
        balances = [call[1].balance_after for call in mirror.calls if call[0] == "append_ledger_entry"]
        assert balances == [Decimal("1000"), Decimal("900"), Decimal("910")]

    @pytest.mark.asyncio
    async def test_failure_keeps_operation_queued(self, mirrored_engine, outbox, mirror, jan):
        """Test that a failed write stops the flush and is retried next time."""
        mirrored_engine.initialize_pool(1000)
        mirrored_engine.add_investment(jan, 100, "x")
        mirror.fail_on = "insert_investment"

        report = await outbox.flush(mirror)

        assert not report.succeeded
        assert "insert_investment" in report.error
        assert report.applied == 2
        assert report.pending == 2
        assert outbox.pending()[0].kind == SyncOperationKind.INSERT_INVESTMENT

        mirror.fail_on = None
        report = await outbox.flush(mirror)

        assert report.succeeded
        assert report.applied == 2
        assert mirror.names[-2:] == ["insert_investment", "append_ledger_entry"]

    @pytest.mark.asyncio
    async def test_state_survives_mirror_failure(self, mirrored_engine, outbox, mirror, jan):
        mirrored_engine.initialize_pool(1000)
        mirror.fail_on = "upsert_settings"

        await outbox.flush(mirror)

        assert mirrored_engine.available_balance == Decimal("1000")
        assert mirrored_engine.is_setup_complete

    @pytest.mark.asyncio
    async def test_audit_events_skipped_without_storage(self, outbox, mirror):
        AuditLogger(outbox).log(AuditEventBuilder.state_reset())

        report = await outbox.flush(mirror)

        assert report.skipped == 1
        assert report.applied == 0
        assert len(outbox) == 0

    @pytest.mark.asyncio
    async def test_audit_events_reach_storage(self, outbox, mirror, audit_storage):
        audit_logger = AuditLogger(outbox)
        engine = LedgerEngine(outbox=outbox, audit_logger=audit_logger)
        engine.initialize_pool(1000)

        report = await outbox.flush(mirror, audit_storage)

        assert report.applied == 3
        assert audit_storage.events[0].event_type.value == "pool_initialized"
        assert mirror.names == ["upsert_settings", "append_ledger_entry"]

    @pytest.mark.asyncio
    async def test_reset_reaches_mirror(self, mirrored_engine, outbox, mirror):
        mirrored_engine.initialize_pool(1000)
        mirrored_engine.reset_all()

        await outbox.flush(mirror)

        assert mirror.names[-1] == "clear_all"

    @pytest.mark.asyncio
    async def test_empty_flush(self, outbox, mirror):
        report = await outbox.flush(mirror)
        assert report.applied == 0
        assert report.succeeded
