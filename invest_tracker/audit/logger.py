"""
Audit Logger

DESIGN DECISION: Every state change of the ledger is logged.
This provides:
1. Complete traceability next to the ledger itself
2. Visibility of the lenient paths (unresolved references are
   accepted, so they must at least be seen)
3. A record of storage failures that were swallowed

The audit logger:
- Is synchronous, because the ledger engine never suspends
- Never raises (a broken audit sink must not block a mutation)
- Queues events on the sync outbox when a remote mirror is attached
"""

import logging
from collections import deque
from typing import Optional

import structlog

from invest_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from invest_tracker.services.sync import SyncOperationKind, SyncOutbox


# Session events kept in memory; the full trail lives in the log and AuditLog sheet
MAX_SESSION_EVENTS = 500


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug_mode: bool = False) -> None:
    """Route structlog output through the stdlib root logger."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug_mode else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The sync outbox, for the AuditLog worksheet (if attached)
    """

    def __init__(
        self,
        outbox: Optional[SyncOutbox] = None,
        max_events: int = MAX_SESSION_EVENTS,
    ):
        """
        Initialize audit logger.

        Args:
            outbox: Outbox feeding the remote audit sheet.
                    If None, only logs locally.
            max_events: How many recent events to keep in memory.
        """
        self._outbox = outbox
        self._logger = structlog.get_logger("invest_tracker.audit")
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    @property
    def events(self) -> list[AuditEvent]:
        """Most recent events of this session, oldest first."""
        return list(self._events)

    def log(self, event: AuditEvent) -> AuditEvent:
        """Log an audit event locally and queue it for the mirror."""
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._events.append(event)

        if self._outbox is not None:
            self._outbox.enqueue(SyncOperationKind.APPEND_AUDIT_EVENT, event)

        return event

    def log_persistence_failed(self, backend: str, error_message: str) -> None:
        """Log a swallowed storage failure."""
        self.log(AuditEventBuilder.persistence_failed(backend, error_message))

    def log_validation_rejected(self, operation: str, error_message: str) -> None:
        """Log an operation rejected before any state change."""
        self.log(AuditEventBuilder.validation_rejected(operation, error_message))

    def log_reference_unresolved(
        self,
        entity_type: str,
        reference_id: Optional[str],
        operation: str,
    ) -> None:
        """Log a reference the engine could not resolve but accepted anyway."""
        self.log(
            AuditEventBuilder.reference_unresolved(entity_type, reference_id, operation)
        )
