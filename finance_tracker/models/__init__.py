"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker core.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.ledger import (
    DEFAULT_EXPENSE_CATEGORY,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    AccountDraft,
    AccountRecord,
    AccountType,
    AccountWithTransactions,
    ActionResult,
    BudgetRecord,
    BudgetStatus,
    ReceiptDraft,
    RecurringInterval,
    TransactionDraft,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    UserRecord,
    utcnow,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_EXPENSE_CATEGORY",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "AccountDraft",
    "AccountRecord",
    "AccountType",
    "AccountWithTransactions",
    "ActionResult",
    "BudgetRecord",
    "BudgetStatus",
    "ReceiptDraft",
    "RecurringInterval",
    "TransactionDraft",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
    "UserRecord",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
