"""
Ledger Engine

Owns the tracker state and is the only code allowed to change it.

INVARIANTS:
1. Ledger entries are only ever appended, never edited or reordered.
2. balance_after of an entry = balance_after of the previous entry (or the
   pool amount when there is none) + the entry's signed amount. The
   Initial Setup entry seeds the chain with the pool amount itself.
3. Every investment, return and manual transaction is committed together
   with exactly one ledger entry, under the same lock.
4. An investment moves Active -> Closed once. Closing again is a no-op.
5. expected_return, expected, warning and investment_notes are captured
   when written and never recomputed.

Validation failures raise before anything changes. Unresolved references
(an unknown investment on a return, an unknown source on a manual
transaction) do not fail: the write goes through with placeholder values
and an audit warning.

Persistence is best-effort: the snapshot is saved after each mutation and
the mirror operations are queued on the outbox. Storage errors are logged
and swallowed; the in-memory state stays authoritative.
"""

import math
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import ValidationError

from invest_tracker.audit import AuditLogger
from invest_tracker.models.audit import AuditEventBuilder
from invest_tracker.models.ledger import (
    DEFAULT_CURRENCY_SYMBOL,
    MONTHLY_RETURN_RATE,
    Investment,
    InvestmentStatus,
    LedgerEntry,
    LedgerEntryType,
    ManualTransaction,
    ManualTransactionType,
    PoolSettings,
    PortfolioSummary,
    ReturnRecord,
    SourceType,
    TrackerState,
    format_currency,
    to_money,
    utc_now,
)
from invest_tracker.services.storage import SnapshotStoreInterface, StorageError
from invest_tracker.services.sync import SyncOperation, SyncOperationKind, SyncOutbox


DateLike = Union[datetime, date, str]

_HUNDRED = Decimal("100")


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class InvalidAmountError(LedgerError):
    """Amount is not a number, or not positive where it must be."""
    pass


class InvalidDescriptionError(LedgerError):
    """Manual transaction description is empty."""
    pass


def summarize(state: TrackerState) -> PortfolioSummary:
    """
    Derive the portfolio aggregates from a state.

    Pure function; nothing here is cached.
    """
    active = [i for i in state.investments if i.status == InvestmentStatus.ACTIVE]

    active_capital = sum((i.amount for i in active), Decimal("0"))
    total_invested = sum((i.amount for i in state.investments), Decimal("0"))
    total_returns = sum((r.amount for r in state.returns), Decimal("0"))
    total_withdrawals = sum(
        (t.amount for t in state.manual_transactions), Decimal("0")
    )
    expected_monthly_income = active_capital * MONTHLY_RETURN_RATE

    if total_invested > 0:
        break_even_progress = min(total_returns / total_invested * _HUNDRED, _HUNDRED)
    else:
        break_even_progress = Decimal("0")

    months_until_recovery = None
    if expected_monthly_income > 0:
        months_until_recovery = math.ceil(
            (total_invested - total_returns) / expected_monthly_income
        )

    average_return = None
    if state.returns:
        average_return = total_returns / len(state.returns)

    return PortfolioSummary(
        total_money_pool=state.total_money_pool,
        active_capital=active_capital,
        total_invested=total_invested,
        total_returns=total_returns,
        total_withdrawals=total_withdrawals,
        available_balance=state.last_balance,
        expected_monthly_income=expected_monthly_income,
        net_profit=total_returns,
        break_even_progress=break_even_progress,
        months_until_recovery=months_until_recovery,
        active_investment_count=len(active),
        closed_investment_count=len(state.investments) - len(active),
        return_count=len(state.returns),
        average_return=average_return,
    )


class LedgerEngine:
    """
    Single-writer controller for the tracker state.

    All mutations run under one re-entrant lock, so the read of the last
    balance and the append of the new entry can never interleave with
    another caller.
    """

    def __init__(
        self,
        state: Optional[TrackerState] = None,
        snapshot_store: Optional[SnapshotStoreInterface] = None,
        outbox: Optional[SyncOutbox] = None,
        audit_logger: Optional[AuditLogger] = None,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    ):
        self._state = state if state is not None else TrackerState()
        self._snapshot_store = snapshot_store
        self._outbox = outbox
        self._audit = audit_logger or AuditLogger()
        self._currency_symbol = currency_symbol
        self._lock = threading.RLock()

    @classmethod
    def load(
        cls,
        snapshot_store: SnapshotStoreInterface,
        outbox: Optional[SyncOutbox] = None,
        audit_logger: Optional[AuditLogger] = None,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    ) -> "LedgerEngine":
        """
        Create an engine from whatever the snapshot store holds.

        An empty store, an unreadable file or a snapshot that fails
        validation all start from the default empty state.
        """
        audit_logger = audit_logger or AuditLogger(outbox)
        state = TrackerState()
        try:
            state = TrackerState.from_snapshot(snapshot_store.load())
            audit_logger.log(
                AuditEventBuilder.state_loaded("snapshot", len(state.transactions))
            )
        except (StorageError, ValidationError) as e:
            audit_logger.log_persistence_failed("snapshot", f"load failed: {e}")

        return cls(
            state=state,
            snapshot_store=snapshot_store,
            outbox=outbox,
            audit_logger=audit_logger,
            currency_symbol=currency_symbol,
        )

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def state(self) -> TrackerState:
        """A deep copy of the current state."""
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def is_setup_complete(self) -> bool:
        return self._state.settings.setup_complete

    @property
    def total_money_pool(self) -> Decimal:
        return self._state.total_money_pool

    @property
    def investments(self) -> list[Investment]:
        with self._lock:
            return [i.model_copy() for i in self._state.investments]

    @property
    def active_investments(self) -> list[Investment]:
        return [i for i in self.investments if i.status == InvestmentStatus.ACTIVE]

    @property
    def closed_investments(self) -> list[Investment]:
        return [i for i in self.investments if i.status == InvestmentStatus.CLOSED]

    @property
    def returns(self) -> list[ReturnRecord]:
        with self._lock:
            return [r.model_copy() for r in self._state.returns]

    @property
    def manual_transactions(self) -> list[ManualTransaction]:
        with self._lock:
            return [t.model_copy() for t in self._state.manual_transactions]

    @property
    def transactions(self) -> list[LedgerEntry]:
        # Entries are frozen, no copy needed
        with self._lock:
            return list(self._state.transactions)

    @property
    def available_balance(self) -> Decimal:
        with self._lock:
            return self._state.last_balance

    def get_investment(self, investment_id: Optional[str]) -> Optional[Investment]:
        with self._lock:
            found = self._find_investment(investment_id)
            return found.model_copy() if found else None

    def get_return(self, return_id: Optional[str]) -> Optional[ReturnRecord]:
        with self._lock:
            found = self._find_return(return_id)
            return found.model_copy() if found else None

    def get_returns_for_investment(self, investment_id: str) -> list[ReturnRecord]:
        return [r for r in self.returns if r.investment_id == investment_id]

    def source_label(self, transaction: ManualTransaction) -> Optional[str]:
        """
        Current label of a manual transaction's source.

        None for general transactions, "Unknown" when the source is gone.
        """
        if transaction.source_type == SourceType.GENERAL:
            return None
        with self._lock:
            label = self._resolve_source_label(
                transaction.source_type, transaction.source_id
            )
        return label or "Unknown"

    def summary(self) -> PortfolioSummary:
        """Current aggregates, recomputed on every call."""
        with self._lock:
            return summarize(self._state)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def initialize_pool(self, amount: Any) -> LedgerEntry:
        """
        Set the money pool and start the ledger with an Initial Setup entry.

        Calling this again re-initializes: the pool amount and setup date
        are overwritten and the ledger restarts from the new amount.
        Existing investments, returns and manual transactions are kept.
        """
        value = self._require_positive(amount, "initialize_pool")
        now = utc_now()

        with self._lock:
            reinitialized = self._state.settings.setup_complete
            had_entries = bool(self._state.transactions)

            settings = PoolSettings(setup_complete=True, setup_date=now)
            entry = LedgerEntry(
                date=now,
                type=LedgerEntryType.INITIAL_SETUP.value,
                description=(
                    f"Total money pool initialized at {self._fmt(value)}"
                ),
                amount=value,
                balance_after=value,
            )

            self._state.total_money_pool = value
            self._state.settings = settings
            self._state.transactions = [entry]

            operations = [
                SyncOperation(
                    kind=SyncOperationKind.UPSERT_SETTINGS,
                    payload=(str(value), settings),
                ),
            ]
            if had_entries:
                operations.append(SyncOperation(kind=SyncOperationKind.CLEAR_LEDGER))
            operations.append(
                SyncOperation(kind=SyncOperationKind.APPEND_LEDGER_ENTRY, payload=entry)
            )

            self._audit.log(
                AuditEventBuilder.pool_initialized(self._fmt(value), reinitialized)
            )
            self._persist(operations)

        return entry

    def add_investment(
        self,
        date: DateLike,
        amount: Any,
        notes: Optional[str] = None,
    ) -> Investment:
        """
        Give out capital from the pool.

        The balance is allowed to go negative; over-committing is not
        blocked here.
        """
        value = self._require_positive(amount, "add_investment")
        investment = self._build(
            "add_investment",
            Investment,
            date=date,
            amount=value,
            notes=notes or None,
            status=InvestmentStatus.ACTIVE,
            expected_return=value * MONTHLY_RETURN_RATE,
        )

        with self._lock:
            entry = self._next_entry(
                date=investment.date,
                entry_type=LedgerEntryType.CAPITAL_GIVEN.value,
                description=f"Capital investment: {investment.notes or 'No notes'}",
                amount=-value,
            )
            self._state.investments.append(investment)
            self._state.transactions.append(entry)

            self._audit.log(
                AuditEventBuilder.investment_added(
                    investment.id, self._fmt(value), self._fmt(entry.balance_after)
                )
            )
            self._persist([
                SyncOperation(
                    kind=SyncOperationKind.INSERT_INVESTMENT,
                    payload=investment.model_copy(),
                ),
                SyncOperation(kind=SyncOperationKind.APPEND_LEDGER_ENTRY, payload=entry),
            ])

        return investment.model_copy()

    def close_investment(self, investment_id: str) -> Optional[LedgerEntry]:
        """
        Close an active investment and return its capital to the balance.

        Returns the Capital Returned entry, or None when the investment
        does not exist or is already closed (nothing changes).
        """
        with self._lock:
            index = self._investment_index(investment_id)
            if index is None:
                self._audit.log(
                    AuditEventBuilder.investment_close_skipped(str(investment_id), "not found")
                )
                return None

            investment = self._state.investments[index]
            if investment.status == InvestmentStatus.CLOSED:
                self._audit.log(
                    AuditEventBuilder.investment_close_skipped(investment.id, "already closed")
                )
                return None

            closed = investment.model_copy(update={"status": InvestmentStatus.CLOSED})
            entry = self._next_entry(
                date=utc_now(),
                entry_type=LedgerEntryType.CAPITAL_RETURNED.value,
                description=(
                    f"Investment closed - capital returned "
                    f"({investment.notes or 'No notes'})"
                ),
                amount=investment.amount,
            )
            self._state.investments[index] = closed
            self._state.transactions.append(entry)

            self._audit.log(
                AuditEventBuilder.investment_closed(
                    closed.id, self._fmt(closed.amount), self._fmt(entry.balance_after)
                )
            )
            self._persist([
                SyncOperation(
                    kind=SyncOperationKind.UPDATE_INVESTMENT,
                    payload=closed.model_copy(),
                ),
                SyncOperation(kind=SyncOperationKind.APPEND_LEDGER_ENTRY, payload=entry),
            ])

        return entry

    def record_return(
        self,
        date: DateLike,
        amount: Any,
        investment_id: Optional[str],
    ) -> ReturnRecord:
        """
        Record a return received for an investment.

        If the investment cannot be found the return is still recorded,
        with expected 0 and the label "Unknown".
        """
        value = self._require_non_negative(amount, "record_return")

        with self._lock:
            investment = self._find_investment(investment_id)
            if investment is None:
                expected = Decimal("0")
                label = "Unknown"
                self._audit.log_reference_unresolved(
                    "investment", investment_id, "record_return"
                )
            else:
                expected = investment.amount * MONTHLY_RETURN_RATE
                label = investment.notes or f"{self._fmt(investment.amount)} investment"
            warning = value < expected

            record = self._build(
                "record_return",
                ReturnRecord,
                date=date,
                amount=value,
                expected=expected,
                warning=warning,
                investment_id=investment_id,
                investment_notes=label,
            )
            description = f"Return from: {label}"
            if warning:
                description += " ⚠️ Below expected"

            entry = self._next_entry(
                date=record.date,
                entry_type=LedgerEntryType.RETURN_RECEIVED.value,
                description=description,
                amount=value,
            )
            self._state.returns.append(record)
            self._state.transactions.append(entry)

            self._audit.log(
                AuditEventBuilder.return_recorded(
                    record.id,
                    str(investment_id),
                    self._fmt(value),
                    self._fmt(expected),
                    warning,
                )
            )
            self._persist([
                SyncOperation(kind=SyncOperationKind.INSERT_RETURN, payload=record.model_copy()),
                SyncOperation(kind=SyncOperationKind.APPEND_LEDGER_ENTRY, payload=entry),
            ])

        return record.model_copy()

    def add_manual_transaction(
        self,
        date: DateLike,
        type: str,
        description: str,
        amount: Any,
        source_type: Union[SourceType, str] = SourceType.GENERAL,
        source_id: Optional[str] = None,
    ) -> ManualTransaction:
        """
        Take money out of the balance (withdrawal, expense, adjustment).

        When the transaction is linked to an investment or a return that
        can be found, the ledger description says where it came from.
        An unresolved source is accepted and simply not annotated.
        """
        value = self._require_positive(amount, "add_manual_transaction")
        if not description or not description.strip():
            self._audit.log_validation_rejected(
                "add_manual_transaction", "description is empty"
            )
            raise InvalidDescriptionError("Description is required")

        transaction = self._build(
            "add_manual_transaction",
            ManualTransaction,
            date=date,
            type=(type or ManualTransactionType.PERSONAL_WITHDRAWAL.value),
            description=description,
            amount=value,
            source_type=source_type,
            source_id=source_id or None,
        )
        if transaction.source_type == SourceType.GENERAL and transaction.source_id:
            transaction = transaction.model_copy(update={"source_id": None})

        with self._lock:
            source_suffix = ""
            if transaction.source_type != SourceType.GENERAL:
                label = self._resolve_source_label(
                    transaction.source_type, transaction.source_id
                )
                if label is None:
                    self._audit.log_reference_unresolved(
                        transaction.source_type.value,
                        transaction.source_id,
                        "add_manual_transaction",
                    )
                else:
                    source_suffix = f" (from {transaction.source_type.value}: {label})"

            entry = self._next_entry(
                date=transaction.date,
                entry_type=transaction.type,
                description=f"{transaction.description}{source_suffix}",
                amount=-value,
            )
            self._state.manual_transactions.append(transaction)
            self._state.transactions.append(entry)

            self._audit.log(
                AuditEventBuilder.manual_transaction_added(
                    transaction.id,
                    transaction.type,
                    self._fmt(value),
                    self._fmt(entry.balance_after),
                )
            )
            self._persist([
                SyncOperation(
                    kind=SyncOperationKind.INSERT_MANUAL_TRANSACTION,
                    payload=transaction.model_copy(),
                ),
                SyncOperation(kind=SyncOperationKind.APPEND_LEDGER_ENTRY, payload=entry),
            ])

        return transaction.model_copy()

    def restore(self, state: TrackerState) -> None:
        """
        Replace the whole state with one loaded from elsewhere.

        Used at startup to adopt the remote copy. The snapshot is saved,
        nothing is queued for the mirror since the state came from it.
        """
        with self._lock:
            self._state = state.model_copy(deep=True)
            self._persist([])

    def reset_all(self) -> None:
        """Destroy everything and return to the pre-setup state. Irreversible."""
        with self._lock:
            self._state = TrackerState()
            self._audit.log(AuditEventBuilder.state_reset())

            if self._snapshot_store is not None:
                try:
                    self._snapshot_store.clear()
                except StorageError as e:
                    self._audit.log_persistence_failed("snapshot", str(e))

            if self._outbox is not None:
                self._outbox.enqueue(SyncOperationKind.CLEAR_ALL)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _fmt(self, amount: Decimal) -> str:
        return format_currency(amount, self._currency_symbol)

    def _parse_amount(self, amount: Any, operation: str) -> Decimal:
        try:
            return to_money(amount)
        except ValueError as e:
            self._audit.log_validation_rejected(operation, str(e))
            raise InvalidAmountError(str(e))

    def _require_positive(self, amount: Any, operation: str) -> Decimal:
        value = self._parse_amount(amount, operation)
        if value <= 0:
            self._audit.log_validation_rejected(operation, f"amount {value} is not positive")
            raise InvalidAmountError(f"Amount must be greater than zero, got {value}")
        return value

    def _require_non_negative(self, amount: Any, operation: str) -> Decimal:
        value = self._parse_amount(amount, operation)
        if value < 0:
            self._audit.log_validation_rejected(operation, f"amount {value} is negative")
            raise InvalidAmountError(f"Amount cannot be negative, got {value}")
        return value

    def _build(self, operation: str, model: type, **fields):
        """Construct a record; schema failures surface as LedgerError."""
        try:
            return model(**fields)
        except ValidationError as e:
            self._audit.log_validation_rejected(operation, str(e))
            raise LedgerError(f"Invalid {model.__name__}: {e}") from e

    def _next_entry(
        self,
        date: datetime,
        entry_type: str,
        description: str,
        amount: Decimal,
    ) -> LedgerEntry:
        # Caller holds the lock
        return LedgerEntry(
            date=date,
            type=entry_type,
            description=description,
            amount=amount,
            balance_after=self._state.last_balance + amount,
        )

    def _investment_index(self, investment_id: Optional[str]) -> Optional[int]:
        for index, investment in enumerate(self._state.investments):
            if investment.id == investment_id:
                return index
        return None

    def _find_investment(self, investment_id: Optional[str]) -> Optional[Investment]:
        index = self._investment_index(investment_id)
        return None if index is None else self._state.investments[index]

    def _find_return(self, return_id: Optional[str]) -> Optional[ReturnRecord]:
        for record in self._state.returns:
            if record.id == return_id:
                return record
        return None

    def _resolve_source_label(
        self,
        source_type: SourceType,
        source_id: Optional[str],
    ) -> Optional[str]:
        if not source_id:
            return None
        if source_type == SourceType.INVESTMENT:
            investment = self._find_investment(source_id)
            if investment:
                return investment.notes or self._fmt(investment.amount)
        elif source_type == SourceType.RETURN:
            record = self._find_return(source_id)
            if record:
                return record.investment_notes or self._fmt(record.amount)
        return None

    def _persist(self, operations: list[SyncOperation]) -> None:
        """Save the snapshot and queue mirror writes. Caller holds the lock."""
        if self._snapshot_store is not None:
            try:
                self._snapshot_store.save(self._state.to_snapshot())
            except StorageError as e:
                self._audit.log_persistence_failed("snapshot", str(e))

        if self._outbox is not None:
            self._outbox.extend(operations)
