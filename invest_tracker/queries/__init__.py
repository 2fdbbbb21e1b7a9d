"""Portfolio queries package."""

from invest_tracker.queries.portfolio import (
    Alert,
    AlertLevel,
    LedgerCounts,
    PortfolioQueries,
)

__all__ = ["Alert", "AlertLevel", "LedgerCounts", "PortfolioQueries"]
