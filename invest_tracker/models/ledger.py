"""
Core Data Models for the Investment Tracker

These models define the strict schemas for the capital pool, the
investments made from it, the returns recorded against them, manual
outflows, and the append-only ledger that carries the running balance.

DESIGN DECISION: All money is held as Decimal. Values arriving as floats
(older snapshots, form widgets) are converted through their string form so
that 0.1 stays 0.1 instead of picking up binary noise.

The persisted snapshot uses camelCase keys (``totalMoneyPool``,
``balanceAfter``...). Python code uses the snake_case attribute names;
the alias generator maps between the two.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
)
from pydantic.alias_generators import to_camel


# Contractual monthly return on every investment
MONTHLY_RETURN_RATE = Decimal("0.10")

DEFAULT_CURRENCY_SYMBOL = "₱"

_CENT = Decimal("0.01")


# =============================================================================
# MONEY AND TIME HELPERS
# =============================================================================

def to_money(value: Any) -> Decimal:
    """
    Coerce a user or storage value to Decimal.

    Floats go through str() so the decimal matches what was typed.
    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError("Booleans are not valid amounts")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"Not a valid amount: {value!r}")
    else:
        raise ValueError(f"Not a valid amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def format_currency(amount: Any, symbol: str = DEFAULT_CURRENCY_SYMBOL) -> str:
    """Format an amount for display: 2 places, half-up, thousands separators."""
    quantized = to_money(amount).quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    return f"{sign}{symbol}{abs(quantized):,.2f}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_timestamp(value: Any) -> Any:
    # Plain dates from date pickers become midnight UTC
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Money = Annotated[Decimal, BeforeValidator(to_money)]
Timestamp = Annotated[
    datetime,
    BeforeValidator(_coerce_timestamp),
    AfterValidator(_ensure_utc),
]


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class InvestmentStatus(str, Enum):
    """
    Investment lifecycle.

    Active -> Closed is the only transition, and Closed is terminal.
    """
    ACTIVE = "Active"
    CLOSED = "Closed"


class SourceType(str, Enum):
    """Where a manual outflow was taken from."""
    GENERAL = "general"
    INVESTMENT = "investment"
    RETURN = "return"


class LedgerEntryType(str, Enum):
    """Ledger labels produced by the engine's own operations."""
    INITIAL_SETUP = "Initial Setup"
    CAPITAL_GIVEN = "Capital Given"
    CAPITAL_RETURNED = "Capital Returned"
    RETURN_RECEIVED = "Return Received"


class ManualTransactionType(str, Enum):
    """
    Suggested manual transaction types.

    The ``type`` field of a manual transaction is an open string;
    these are the values the UI offers.
    """
    PERSONAL_WITHDRAWAL = "Personal Withdrawal"
    PERSONAL_EXPENSE = "Personal Expense"
    MANUAL_ADJUSTMENT = "Manual Adjustment"


# =============================================================================
# ENTITIES
# =============================================================================

class _SnapshotModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class PoolSettings(_SnapshotModel):
    """Setup flags for the capital pool."""

    setup_complete: bool = False
    setup_date: Optional[Timestamp] = None


class Investment(_SnapshotModel):
    """
    A portion of the pool handed out as capital.

    ``expected_return`` is captured once at creation and never recomputed.
    """

    id: str = Field(default_factory=new_id)
    date: Timestamp
    amount: Money = Field(..., gt=0, description="Capital committed")
    notes: Optional[str] = None
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    expected_return: Money = Field(..., ge=0)

    @property
    def is_active(self) -> bool:
        return self.status == InvestmentStatus.ACTIVE


class ReturnRecord(_SnapshotModel):
    """
    A monthly return received for one investment.

    ``expected``, ``warning`` and ``investment_notes`` are snapshots taken
    when the return was recorded.
    """

    id: str = Field(default_factory=new_id)
    date: Timestamp
    amount: Money = Field(..., ge=0)
    expected: Money = Field(default=Decimal("0"), ge=0)
    warning: bool = False
    investment_id: Optional[str] = None
    investment_notes: str = "Unknown"

    @property
    def difference(self) -> Decimal:
        return self.amount - self.expected


class ManualTransaction(_SnapshotModel):
    """A withdrawal, expense or adjustment taken out of the balance."""

    id: str = Field(default_factory=new_id)
    date: Timestamp
    type: str = Field(
        default=ManualTransactionType.PERSONAL_WITHDRAWAL.value,
        min_length=1,
    )
    description: str = Field(..., min_length=1)
    amount: Money = Field(..., gt=0, description="Outflow, always positive")
    source_type: SourceType = SourceType.GENERAL
    source_id: Optional[str] = None


class LedgerEntry(_SnapshotModel):
    """
    One immutable line of the transaction ledger.

    ``amount`` is signed (negative = outflow). ``balance_after`` is the
    running balance once this entry is applied.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str = Field(default_factory=new_id)
    date: Timestamp
    type: str
    description: str = ""
    amount: Money
    balance_after: Money

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    @property
    def is_debit(self) -> bool:
        return self.amount < 0


# =============================================================================
# STATE CONTAINER
# =============================================================================

class TrackerState(_SnapshotModel):
    """
    The complete tracker state.

    This is exactly the shape written to and read from snapshot storage.
    """

    total_money_pool: Money = Decimal("0")
    investments: list[Investment] = Field(default_factory=list)
    returns: list[ReturnRecord] = Field(default_factory=list)
    manual_transactions: list[ManualTransaction] = Field(default_factory=list)
    transactions: list[LedgerEntry] = Field(default_factory=list)
    settings: PoolSettings = Field(default_factory=PoolSettings)

    @property
    def last_balance(self) -> Decimal:
        """Balance after the last ledger entry, or the pool if there is none."""
        if not self.transactions:
            return self.total_money_pool
        return self.transactions[-1].balance_after

    def to_snapshot(self) -> dict:
        """Convert to the JSON-safe camelCase snapshot dict."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_snapshot(cls, snapshot: Optional[dict]) -> "TrackerState":
        """Rebuild state from a snapshot dict. Missing keys fall back to defaults."""
        if not snapshot:
            return cls()
        return cls.model_validate(snapshot)


# =============================================================================
# DERIVED VIEW
# =============================================================================

class PortfolioSummary(BaseModel):
    """Aggregates derived from the current state. Never stored."""

    total_money_pool: Decimal
    active_capital: Decimal
    total_invested: Decimal
    total_returns: Decimal
    total_withdrawals: Decimal
    available_balance: Decimal
    expected_monthly_income: Decimal
    net_profit: Decimal
    break_even_progress: Decimal
    months_until_recovery: Optional[int] = None

    active_investment_count: int = 0
    closed_investment_count: int = 0
    return_count: int = 0
    average_return: Optional[Decimal] = None

    @property
    def is_fully_recovered(self) -> bool:
        return self.break_even_progress >= 100
