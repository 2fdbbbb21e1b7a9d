"""
Tests for snapshot stores and the Google Sheets mirror.

The gspread worksheet is replaced by an in-memory fake so no network
calls are made.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from invest_tracker.engine import LedgerEngine, summarize
from invest_tracker.models.audit import AuditEventBuilder
from invest_tracker.models.ledger import (
    Investment,
    InvestmentStatus,
    LedgerEntry,
    ManualTransaction,
    PoolSettings,
    ReturnRecord,
    SourceType,
    TrackerState,
)
from invest_tracker.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerMirror,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    NotFoundError,
    StorageError,
)
from invest_tracker.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    INVESTMENT_COLUMNS,
    LEDGER_COLUMNS,
    MANUAL_TRANSACTION_COLUMNS,
    RETURN_COLUMNS,
    SETTINGS_COLUMNS,
)
from invest_tracker.services.sync import SyncOutbox


class FakeWorksheet:
    def __init__(self, columns):
        self.rows = [list(columns)]
        self.reads = 0

    def get_all_values(self):
        self.reads += 1
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def clear(self):
        self.rows = []

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.rows[index] = list(values[0])


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient with one fake worksheet per table."""

    def __init__(self):
        self.sheets = {
            "settings": FakeWorksheet(SETTINGS_COLUMNS),
            "investments": FakeWorksheet(INVESTMENT_COLUMNS),
            "returns": FakeWorksheet(RETURN_COLUMNS),
            "manual_transactions": FakeWorksheet(MANUAL_TRANSACTION_COLUMNS),
            "ledger": FakeWorksheet(LEDGER_COLUMNS),
            "audit": FakeWorksheet(AUDIT_COLUMNS),
        }

    def settings_sheet(self):
        return self.sheets["settings"]

    def investments_sheet(self):
        return self.sheets["investments"]

    def returns_sheet(self):
        return self.sheets["returns"]

    def manual_transactions_sheet(self):
        return self.sheets["manual_transactions"]

    def ledger_sheet(self):
        return self.sheets["ledger"]

    def audit_sheet(self):
        return self.sheets["audit"]


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def sheets_mirror(sheets_client):
    return GoogleSheetsLedgerMirror(sheets_client)


def _at(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


class TestJsonFileSnapshotStore:
    """Tests for the local JSON snapshot."""

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonFileSnapshotStore(tmp_path / "none.json").load() is None

    def test_save_and_load(self, tmp_path):
        store = JsonFileSnapshotStore(tmp_path / "nested" / "data.json")
        store.save({"totalMoneyPool": "1000", "notes": "₱"})

        assert store.load() == {"totalMoneyPool": "1000", "notes": "₱"}
        assert list(store.path.parent.iterdir()) == [store.path]

    def test_non_object_is_an_error(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileSnapshotStore(path).load()

    def test_clear(self, tmp_path):
        store = JsonFileSnapshotStore(tmp_path / "data.json")
        store.save({})
        store.clear()
        store.clear()
        assert store.load() is None


class TestInMemorySnapshotStore:
    def test_returns_copies(self):
        store = InMemorySnapshotStore()
        snapshot = {"investments": []}
        store.save(snapshot)
        snapshot["investments"].append("changed")
        assert store.load() == {"investments": []}


class TestGoogleSheetsLedgerMirror:
    """Tests for the row mirror against fake worksheets."""

    @pytest.mark.asyncio
    async def test_empty_spreadsheet_has_no_snapshot(self, sheets_mirror):
        assert await sheets_mirror.load_snapshot() is None

    @pytest.mark.asyncio
    async def test_rows_rebuild_state(self, sheets_mirror):
        investment = Investment(
            date=_at(1), amount=50000, notes="Juan", expected_return=5000
        )
        record = ReturnRecord(
            date=_at(2),
            amount=3000,
            expected=5000,
            warning=True,
            investment_id=investment.id,
            investment_notes="Juan",
        )
        transaction = ManualTransaction(
            date=_at(3),
            type="Personal Expense",
            description="Dinner",
            amount=500,
            source_type=SourceType.RETURN,
            source_id=record.id,
        )

        await sheets_mirror.upsert_settings(
            "100000", PoolSettings(setup_complete=True, setup_date=_at(1))
        )
        await sheets_mirror.insert_investment(investment)
        await sheets_mirror.insert_return(record)
        await sheets_mirror.insert_manual_transaction(transaction)

        state = TrackerState.from_snapshot(await sheets_mirror.load_snapshot())

        assert state.total_money_pool == Decimal("100000")
        assert state.settings.setup_complete
        assert state.investments == [investment]
        assert state.returns == [record]
        assert state.manual_transactions == [transaction]

    @pytest.mark.asyncio
    async def test_ledger_keeps_append_order(self, sheets_mirror):
        """Test that ledger rows come back in the order they were written, whatever their dates."""
        setup = LedgerEntry(date=_at(5, 9), type="Initial Setup", amount=100, balance_after=100)
        earlier = LedgerEntry(date=_at(1), type="Capital Given", amount=-10, balance_after=90)

        await sheets_mirror.upsert_settings("100", PoolSettings(setup_complete=True))
        for entry in (setup, earlier):
            await sheets_mirror.append_ledger_entry(entry)

        state = TrackerState.from_snapshot(await sheets_mirror.load_snapshot())

        assert [e.type for e in state.transactions] == ["Initial Setup", "Capital Given"]
        assert state.last_balance == Decimal("90")

    @pytest.mark.asyncio
    async def test_engine_state_survives_mirror_round_trip(self, sheets_mirror, jan):
        """Test that state pushed through the outbox reloads with the same aggregates."""
        outbox = SyncOutbox()
        engine = LedgerEngine(outbox=outbox)
        engine.initialize_pool(100000)
        investment = engine.add_investment(jan, 50000, "Juan")
        engine.add_investment(date(2024, 1, 1), 20000)
        record = engine.record_return(date(2024, 2, 15), 3000, investment.id)
        engine.add_manual_transaction(
            date(2024, 1, 2), "Personal Expense", "Dinner", 800, SourceType.RETURN, record.id
        )
        engine.close_investment(investment.id)

        report = await outbox.flush(sheets_mirror)
        assert report.succeeded

        state = TrackerState.from_snapshot(await sheets_mirror.load_snapshot())

        assert state == engine.state
        assert summarize(state) == engine.summary()
        assert state.last_balance == Decimal("82200")

        restored = LedgerEngine()
        restored.restore(state)
        restored.add_manual_transaction(jan, "Personal Withdrawal", "Rent", 200)
        assert restored.available_balance == Decimal("82000")

    @pytest.mark.asyncio
    async def test_update_investment_rewrites_row(self, sheets_mirror, sheets_client):
        investment = Investment(date=_at(1), amount=100, expected_return=10)
        await sheets_mirror.insert_investment(investment)

        closed = investment.model_copy(update={"status": InvestmentStatus.CLOSED})
        await sheets_mirror.update_investment(closed)

        rows = sheets_client.investments_sheet().get_all_values()
        assert len(rows) == 2
        assert rows[1][4] == "Closed"

    @pytest.mark.asyncio
    async def test_update_missing_investment_is_not_retried(self, sheets_mirror, sheets_client):
        investment = Investment(date=_at(1), amount=100, expected_return=10)

        with pytest.raises(NotFoundError):
            await sheets_mirror.update_investment(investment)

        assert sheets_client.investments_sheet().reads == 1

    @pytest.mark.asyncio
    async def test_clear_all_keeps_headers(self, sheets_mirror, sheets_client):
        await sheets_mirror.upsert_settings("100", PoolSettings(setup_complete=True))
        await sheets_mirror.append_ledger_entry(
            LedgerEntry(date=date(2024, 1, 1), type="x", amount=1, balance_after=1)
        )

        await sheets_mirror.clear_all()

        assert sheets_client.ledger_sheet().get_all_values() == [LEDGER_COLUMNS]
        assert await sheets_mirror.load_snapshot() is None


class TestGoogleSheetsAuditStorage:
    @pytest.mark.asyncio
    async def test_events_newest_first(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        first = AuditEventBuilder.state_reset()
        second = AuditEventBuilder.validation_rejected("add_investment", "bad")
        second.timestamp = first.timestamp.replace(year=first.timestamp.year + 1)

        await storage.append_event(first)
        await storage.append_event(second)
        events = await storage.get_recent_events(limit=1)

        assert [e.event_id for e in events] == [second.event_id]
        assert events[0].error_message == "bad"
