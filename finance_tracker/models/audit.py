"""
Audit Models for Finance Tracker

Every change to a user's ledger is logged for audit purposes.
This provides:
1. Traceability of every balance movement
2. Debugging information when things go wrong
3. A record of denied and failed requests

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Identity
    USER_REGISTERED = "user_registered"
    ACCESS_DENIED = "access_denied"

    # Accounts
    ACCOUNT_CREATED = "account_created"
    DEFAULT_ACCOUNT_CHANGED = "default_account_changed"

    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTIONS_DELETED = "transactions_deleted"
    LEDGER_SEEDED = "ledger_seeded"

    # Budget
    BUDGET_UPDATED = "budget_updated"

    # Receipts
    RECEIPT_SCANNED = "receipt_scanned"
    RECEIPT_NOT_RECOGNIZED = "receipt_not_recognized"
    RECEIPT_PARSE_FAILED = "receipt_parse_failed"

    # Abuse protection
    RATE_LIMITED = "rate_limited"
    REQUEST_BLOCKED = "request_blocked"

    # Failures
    OPERATION_FAILED = "operation_failed"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    user_id: Optional[UUID] = Field(
        default=None,
        description="Internal id of the acting user"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'budget')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one request"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def details_json(self) -> str:
        """Details as a JSON string for column storage."""
        return json.dumps(self.details, default=str) if self.details else ""


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(user_id, account_id, ...)
        event = AuditEventBuilder.rate_limited(user_id, remaining, reset, ...)
    """

    @staticmethod
    def user_registered(
        user_id: UUID,
        external_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="User registered on first access",
            details={"external_id": external_id},
        )

    @staticmethod
    def access_denied(
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Access denied: {reason}",
            error_code=reason,
        )

    @staticmethod
    def account_created(
        user_id: UUID,
        account_id: UUID,
        name: str,
        balance: str,
        is_default: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created: {name}",
            details={
                "opening_balance": balance,
                "is_default": is_default,
            },
            is_user_action=True,
        )

    @staticmethod
    def default_account_changed(
        user_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_ACCOUNT_CHANGED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Default account changed",
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        user_id: UUID,
        transaction_id: UUID,
        account_id: UUID,
        delta: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction recorded, balance moved by {delta}",
            details={
                "account_id": str(account_id),
                "delta": delta,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_deleted(
        user_id: UUID,
        deleted: int,
        deltas: dict[str, str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_DELETED,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Deleted {deleted} transactions",
            details={
                "deleted": deleted,
                "balance_deltas": deltas,
            },
            is_user_action=True,
        )

    @staticmethod
    def ledger_seeded(
        account_id: UUID,
        created: int,
        balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_SEEDED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Demo ledger replaced with {created} transactions",
            details={
                "created": created,
                "balance": balance,
            },
        )

    @staticmethod
    def budget_updated(
        user_id: UUID,
        budget_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget set to {amount}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def receipt_scanned(
        mime_type: str,
        size_bytes: int,
        recognized: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.RECEIPT_SCANNED
                if recognized
                else AuditEventType.RECEIPT_NOT_RECOGNIZED
            ),
            entity_type="receipt",
            correlation_id=correlation_id,
            description=(
                "Receipt scanned"
                if recognized
                else "Image was not recognized as a receipt"
            ),
            details={
                "mime_type": mime_type,
                "size_bytes": size_bytes,
            },
        )

    @staticmethod
    def receipt_parse_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Classifier response could not be parsed",
            error_code="ReceiptParseError",
            error_message=error_message,
        )

    @staticmethod
    def rate_limited(
        user_id: UUID,
        remaining: int,
        reset_in_seconds: float,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Rate limit exceeded",
            error_code="RATE_LIMIT_EXCEEDED",
            details={
                "remaining": remaining,
                "reset_in_seconds": reset_in_seconds,
            },
        )

    @staticmethod
    def request_blocked(
        user_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_BLOCKED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Request blocked: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def operation_failed(
        operation: str,
        error_code: str,
        error_message: str,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{operation} failed",
            error_code=error_code,
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
