"""
Shared fixtures.

No real Google Sheets calls in tests: the mirror is replaced by
in-process fakes that record what they were asked to do.
"""

from datetime import date
from typing import Optional

import pytest

from invest_tracker.audit import AuditLogger
from invest_tracker.engine import LedgerEngine
from invest_tracker.services.storage import (
    AuditStorageInterface,
    InMemorySnapshotStore,
    LedgerMirrorInterface,
    SnapshotStoreInterface,
    StorageError,
)
from invest_tracker.services.sync import SyncOutbox


class FakeMirror(LedgerMirrorInterface):
    """Records mirror calls in order; can be told to fail on one of them."""

    def __init__(self, snapshot: Optional[dict] = None):
        self.calls: list[tuple] = []
        self.fail_on: Optional[str] = None
        self.snapshot = snapshot

    async def _record(self, name: str, *args) -> None:
        if name == self.fail_on:
            raise StorageError(f"{name} unavailable")
        self.calls.append((name, *args))

    async def upsert_settings(self, total_money_pool, settings):
        await self._record("upsert_settings", total_money_pool, settings)

    async def insert_investment(self, investment):
        await self._record("insert_investment", investment)

    async def update_investment(self, investment):
        await self._record("update_investment", investment)

    async def insert_return(self, record):
        await self._record("insert_return", record)

    async def insert_manual_transaction(self, transaction):
        await self._record("insert_manual_transaction", transaction)

    async def append_ledger_entry(self, entry):
        await self._record("append_ledger_entry", entry)

    async def clear_ledger(self):
        await self._record("clear_ledger")

    async def clear_all(self):
        await self._record("clear_all")

    async def load_snapshot(self):
        if self.fail_on == "load_snapshot":
            raise StorageError("load_snapshot unavailable")
        return self.snapshot

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events = []
        self.fail = False

    async def append_event(self, event):
        self.events.append(event)

    async def get_recent_events(self, limit: int = 100):
        if self.fail:
            raise StorageError("audit sheet unavailable")
        return list(reversed(self.events))[:limit]


class FailingSnapshotStore(SnapshotStoreInterface):
    """Every write fails, like a read-only data directory."""

    def load(self):
        return None

    def save(self, snapshot):
        raise StorageError("disk full")

    def clear(self):
        raise StorageError("disk full")


@pytest.fixture
def snapshot_store():
    return InMemorySnapshotStore()


@pytest.fixture
def failing_store():
    return FailingSnapshotStore()


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def engine(snapshot_store, audit_logger):
    return LedgerEngine(snapshot_store=snapshot_store, audit_logger=audit_logger)


@pytest.fixture
def pool_engine(engine):
    """An engine set up with a pool of 100,000."""
    engine.initialize_pool(100000)
    return engine


@pytest.fixture
def outbox():
    return SyncOutbox()


@pytest.fixture
def mirror():
    return FakeMirror()


@pytest.fixture
def audit_storage():
    return FakeAuditStorage()


@pytest.fixture
def jan():
    return date(2024, 1, 15)
