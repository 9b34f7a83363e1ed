"""Services package."""

from finance_tracker.services.storage import (
    AccountNotFoundError,
    AuditStorageInterface,
    DatabaseClient,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ScopedLedger,
    SQLAlchemyAuditStorage,
    SQLAlchemyLedgerStorage,
    StorageError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from finance_tracker.services.protection import (
    ProtectionServiceInterface,
    RateGuard,
    RateLimitedError,
    RequestBlockedError,
    TokenBucketProtection,
)
from finance_tracker.services.invalidation import (
    LoggingViewInvalidator,
    ViewInvalidator,
)

__all__ = [
    # Storage services
    "AccountNotFoundError",
    "AuditStorageInterface",
    "DatabaseClient",
    "DuplicateError",
    "LedgerStorageInterface",
    "NotFoundError",
    "ScopedLedger",
    "SQLAlchemyAuditStorage",
    "SQLAlchemyLedgerStorage",
    "StorageError",
    "TransactionNotFoundError",
    "UserNotFoundError",
    # Abuse protection
    "ProtectionServiceInterface",
    "RateGuard",
    "RateLimitedError",
    "RequestBlockedError",
    "TokenBucketProtection",
    # View invalidation
    "LoggingViewInvalidator",
    "ViewInvalidator",
]
