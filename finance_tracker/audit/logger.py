"""
Audit Logger

DESIGN DECISION: Every change to a ledger is logged.
This provides:
1. Complete traceability of balance movements
2. Debugging capability
3. A record of denied and failed requests

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finance_tracker.services.storage.interface import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def log_user_registered(
        self,
        user_id: UUID,
        external_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.user_registered(
            user_id=user_id,
            external_id=external_id,
            correlation_id=correlation_id,
        ))

    async def log_access_denied(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.access_denied(
            reason=reason,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def log_account_created(
        self,
        user_id: UUID,
        account_id: UUID,
        name: str,
        balance: str,
        is_default: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log account creation with its opening balance."""
        await self.log(AuditEventBuilder.account_created(
            user_id=user_id,
            account_id=account_id,
            name=name,
            balance=balance,
            is_default=is_default,
            correlation_id=correlation_id,
        ))

    async def log_default_account_changed(
        self,
        user_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.default_account_changed(
            user_id=user_id,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        user_id: UUID,
        transaction_id: UUID,
        account_id: UUID,
        delta: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction and the balance delta it applied."""
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            account_id=account_id,
            delta=delta,
            correlation_id=correlation_id,
        ))

    async def log_transactions_deleted(
        self,
        user_id: UUID,
        deleted: int,
        deltas: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a bulk delete with the per-account reversal deltas."""
        await self.log(AuditEventBuilder.transactions_deleted(
            user_id=user_id,
            deleted=deleted,
            deltas=deltas,
            correlation_id=correlation_id,
        ))

    async def log_ledger_seeded(
        self,
        account_id: UUID,
        created: int,
        balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_seeded(
            account_id=account_id,
            created=created,
            balance=balance,
            correlation_id=correlation_id,
        ))

    async def log_budget_updated(
        self,
        user_id: UUID,
        budget_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_updated(
            user_id=user_id,
            budget_id=budget_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------------

    async def log_receipt_scanned(
        self,
        mime_type: str,
        size_bytes: int,
        recognized: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scanned(
            mime_type=mime_type,
            size_bytes=size_bytes,
            recognized=recognized,
            correlation_id=correlation_id,
        ))

    async def log_receipt_parse_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_parse_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Protection and failures
    # -------------------------------------------------------------------------

    async def log_rate_limited(
        self,
        user_id: UUID,
        remaining: int,
        reset_in_seconds: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rate_limited(
            user_id=user_id,
            remaining=remaining,
            reset_in_seconds=reset_in_seconds,
            correlation_id=correlation_id,
        ))

    async def log_request_blocked(
        self,
        user_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.request_blocked(
            user_id=user_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_operation_failed(
        self,
        operation: str,
        error_code: str,
        error_message: str,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a mutating operation that returned a failed envelope."""
        await self.log(AuditEventBuilder.operation_failed(
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new request (e.g., recording a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
