"""
Data Models Package

This package contains all Pydantic models used by the investment tracker.
All data flowing through the system must conform to these schemas.
"""

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
from invest_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CURRENCY_SYMBOL",
    "MONTHLY_RETURN_RATE",
    "Investment",
    "InvestmentStatus",
    "LedgerEntry",
    "LedgerEntryType",
    "ManualTransaction",
    "ManualTransactionType",
    "PoolSettings",
    "PortfolioSummary",
    "ReturnRecord",
    "SourceType",
    "TrackerState",
    "format_currency",
    "to_money",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
