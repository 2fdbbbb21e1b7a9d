"""
Portfolio Read Models

Everything the presentation layer shows beyond the raw collections:
dashboard alerts, ledger counts, recent activity and the chart series.

All of it is computed from a TrackerState snapshot. Nothing here
changes state, and nothing is cached between calls.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

import pandas as pd
from pydantic import BaseModel

from invest_tracker.engine import LedgerEngine, summarize
from invest_tracker.models.ledger import (
    DEFAULT_CURRENCY_SYMBOL,
    LedgerEntry,
    PortfolioSummary,
    TrackerState,
    format_currency,
)


class AlertLevel(str, Enum):
    """How loudly the UI should show an alert."""
    DANGER = "danger"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class Alert(BaseModel):
    level: AlertLevel
    message: str


class LedgerCounts(BaseModel):
    """Headline numbers for the ledger page."""
    credits: int
    debits: int
    current_balance: Decimal


class PortfolioQueries:
    """
    Read-only views over one state snapshot.

    Build one per render; it does not follow later changes.
    """

    def __init__(
        self,
        state: TrackerState,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    ):
        self._state = state
        self._summary = summarize(state)
        self._currency_symbol = currency_symbol

    @classmethod
    def from_engine(
        cls,
        engine: LedgerEngine,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    ) -> "PortfolioQueries":
        return cls(engine.state, currency_symbol)

    @property
    def summary(self) -> PortfolioSummary:
        return self._summary

    def _fmt(self, amount: Decimal) -> str:
        return format_currency(amount, self._currency_symbol)

    def alerts(self) -> list[Alert]:
        """Dashboard alerts, most severe first."""
        summary = self._summary
        returns = self._state.returns
        alerts = []

        if summary.available_balance < 0:
            alerts.append(Alert(
                level=AlertLevel.DANGER,
                message=f"Available balance is negative: {self._fmt(summary.available_balance)}",
            ))

        if summary.active_capital > 0 and returns:
            last = returns[-1]
            if last.warning:
                alerts.append(Alert(
                    level=AlertLevel.WARNING,
                    message=(
                        f"Last return ({self._fmt(last.amount)}) was below "
                        f"expected ({self._fmt(last.expected)})"
                    ),
                ))

        if summary.active_capital > 0 and not returns:
            alerts.append(Alert(
                level=AlertLevel.WARNING,
                message="No monthly returns recorded yet. Remember to log your returns!",
            ))

        months = summary.months_until_recovery
        if months is not None and months > 0:
            plural = "s" if months > 1 else ""
            alerts.append(Alert(
                level=AlertLevel.INFO,
                message=f"~{months} month{plural} remaining until capital fully recovered",
            ))

        if summary.is_fully_recovered:
            alerts.append(Alert(
                level=AlertLevel.SUCCESS,
                message="Capital fully recovered! All returns from here are pure profit.",
            ))

        return alerts

    def ledger_counts(self) -> LedgerCounts:
        entries = self._state.transactions
        return LedgerCounts(
            credits=sum(1 for e in entries if e.is_credit),
            debits=sum(1 for e in entries if e.is_debit),
            current_balance=self._summary.available_balance,
        )

    def recent_activity(self, limit: int = 5) -> list[LedgerEntry]:
        """The last ``limit`` ledger entries, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._state.transactions[-limit:]))

    def returns_table(self) -> pd.DataFrame:
        """Returns newest first, with the difference to the expected amount."""
        rows = [
            {
                "date": r.date,
                "investment": r.investment_notes or "Unlinked",
                "received": float(r.amount),
                "expected": float(r.expected),
                "difference": float(r.difference),
                "status": "Below" if r.warning else "On Target",
            }
            for r in reversed(self._state.returns)
        ]
        return pd.DataFrame(
            rows,
            columns=["date", "investment", "received", "expected", "difference", "status"],
        )

    def returns_series(self) -> pd.DataFrame:
        """Received vs expected per recorded return."""
        rows = [
            {
                "month": r.date.strftime("%b %Y"),
                "received": float(r.amount),
                "expected": float(r.expected),
            }
            for r in self._state.returns
        ]
        return pd.DataFrame(rows, columns=["month", "received", "expected"])

    def profit_series(self) -> pd.DataFrame:
        """Cumulative returns against total invested capital."""
        frame = pd.DataFrame(
            [
                {"month": r.date.strftime("%b %Y"), "amount": float(r.amount)}
                for r in self._state.returns
            ],
            columns=["month", "amount"],
        )
        frame["cumulative"] = frame["amount"].cumsum()
        frame["invested"] = float(self._summary.total_invested)
        return frame[["month", "cumulative", "invested"]]

    def balance_series(self) -> pd.DataFrame:
        """Balance after each ledger entry, with current active capital."""
        rows = [
            {
                "date": e.date.strftime("%b %d"),
                "balance": float(e.balance_after),
                "capital": float(self._summary.active_capital),
            }
            for e in self._state.transactions
        ]
        return pd.DataFrame(rows, columns=["date", "balance", "capital"])

    def investment_returns(self, investment_id: str) -> Optional[Decimal]:
        """Total received for one investment, or None if it has no returns."""
        amounts = [
            r.amount for r in self._state.returns if r.investment_id == investment_id
        ]
        if not amounts:
            return None
        return sum(amounts, Decimal("0"))
