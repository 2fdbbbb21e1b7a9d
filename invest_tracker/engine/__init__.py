"""Ledger engine package."""

from invest_tracker.engine.ledger import (
    InvalidAmountError,
    InvalidDescriptionError,
    LedgerEngine,
    LedgerError,
    summarize,
)

__all__ = [
    "InvalidAmountError",
    "InvalidDescriptionError",
    "LedgerEngine",
    "LedgerError",
    "summarize",
]
