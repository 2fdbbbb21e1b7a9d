"""
Audit Models for the Investment Tracker

Every state-changing action on the ledger is also recorded as an audit
event. The ledger says what the balance is; the audit trail says what
happened around it, including the things the engine let through in a
degraded form (unresolved references, failed storage writes).

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from invest_tracker.models.ledger import new_id, utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Pool lifecycle
    POOL_INITIALIZED = "pool_initialized"
    POOL_REINITIALIZED = "pool_reinitialized"
    STATE_RESET = "state_reset"
    STATE_LOADED = "state_loaded"

    # Investments
    INVESTMENT_ADDED = "investment_added"
    INVESTMENT_CLOSED = "investment_closed"
    INVESTMENT_CLOSE_SKIPPED = "investment_close_skipped"

    # Returns
    RETURN_RECORDED = "return_recorded"
    RETURN_BELOW_EXPECTED = "return_below_expected"

    # Manual outflows
    MANUAL_TRANSACTION_ADDED = "manual_transaction_added"

    # Leniency and failures
    REFERENCE_UNRESOLVED = "reference_unresolved"
    VALIDATION_REJECTED = "validation_rejected"
    PERSISTENCE_FAILED = "persistence_failed"

    # Remote mirror
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'investment', 'return', 'ledger')"
    )
    entity_id: Optional[str] = None

    description: str
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the AuditLog worksheet.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, description, details_json, error_message]
        """
        return [
            self.event_id,
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.investment_added(investment_id, "50000.00", "Juan")
    """

    @staticmethod
    def pool_initialized(amount: str, reinitialized: bool = False) -> AuditEvent:
        if reinitialized:
            return AuditEvent(
                event_type=AuditEventType.POOL_REINITIALIZED,
                severity=AuditSeverity.WARNING,
                entity_type="pool",
                description=f"Money pool re-initialized at {amount}; ledger restarted",
                details={"amount": amount},
            )
        return AuditEvent(
            event_type=AuditEventType.POOL_INITIALIZED,
            entity_type="pool",
            description=f"Money pool initialized at {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def investment_added(
        investment_id: str,
        amount: str,
        balance_after: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVESTMENT_ADDED,
            entity_type="investment",
            entity_id=investment_id,
            description=f"Capital given: {amount}",
            details={"amount": amount, "balance_after": balance_after},
        )

    @staticmethod
    def investment_closed(
        investment_id: str,
        amount: str,
        balance_after: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVESTMENT_CLOSED,
            entity_type="investment",
            entity_id=investment_id,
            description=f"Investment closed, {amount} returned to pool",
            details={"amount": amount, "balance_after": balance_after},
        )

    @staticmethod
    def investment_close_skipped(investment_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVESTMENT_CLOSE_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="investment",
            entity_id=investment_id,
            description=f"Close skipped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def return_recorded(
        return_id: str,
        investment_id: str,
        amount: str,
        expected: str,
        warning: bool,
    ) -> AuditEvent:
        if warning:
            return AuditEvent(
                event_type=AuditEventType.RETURN_BELOW_EXPECTED,
                severity=AuditSeverity.WARNING,
                entity_type="return",
                entity_id=return_id,
                description=f"Return of {amount} is below expected {expected}",
                details={
                    "investment_id": investment_id,
                    "amount": amount,
                    "expected": expected,
                },
            )
        return AuditEvent(
            event_type=AuditEventType.RETURN_RECORDED,
            entity_type="return",
            entity_id=return_id,
            description=f"Return of {amount} recorded",
            details={
                "investment_id": investment_id,
                "amount": amount,
                "expected": expected,
            },
        )

    @staticmethod
    def manual_transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        balance_after: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MANUAL_TRANSACTION_ADDED,
            entity_type="manual_transaction",
            entity_id=transaction_id,
            description=f"{transaction_type}: {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def reference_unresolved(
        entity_type: str,
        reference_id: Optional[str],
        operation: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFERENCE_UNRESOLVED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=reference_id,
            description=f"{operation}: {entity_type} {reference_id} not found, recorded without it",
            details={"operation": operation},
        )

    @staticmethod
    def validation_rejected(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"{operation} rejected",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def state_reset() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="pool",
            description="All data reset",
        )

    @staticmethod
    def state_loaded(source: str, ledger_entries: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOADED,
            severity=AuditSeverity.DEBUG,
            description=f"State loaded from {source}",
            details={"source": source, "ledger_entries": ledger_entries},
        )

    @staticmethod
    def persistence_failed(backend: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Failed to persist state to {backend}",
            error_message=error_message,
            details={"backend": backend},
        )

    @staticmethod
    def sync_finished(
        applied: int,
        pending: int,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        if error_message:
            return AuditEvent(
                event_type=AuditEventType.SYNC_FAILED,
                severity=AuditSeverity.ERROR,
                description=f"Remote sync stopped after {applied} operations",
                error_message=error_message,
                details={"applied": applied, "pending": pending},
            )
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.DEBUG,
            description=f"Remote sync applied {applied} operations",
            details={"applied": applied, "pending": pending},
        )
