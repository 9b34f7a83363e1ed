"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements SQLAlchemy (async) as the backend, but designed to be swappable.
"""

from finance_tracker.services.storage.interface import (
    AccountNotFoundError,
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ReversalFunc,
    StorageError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from finance_tracker.services.storage.sqlalchemy_store import (
    DatabaseClient,
    SQLAlchemyAuditStorage,
    SQLAlchemyLedgerStorage,
)
from finance_tracker.services.storage.scoped import ScopedLedger

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "ReversalFunc",
    # Exceptions
    "AccountNotFoundError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "TransactionNotFoundError",
    "UserNotFoundError",
    # SQLAlchemy implementation
    "DatabaseClient",
    "SQLAlchemyAuditStorage",
    "SQLAlchemyLedgerStorage",
    # Owner scoping
    "ScopedLedger",
]
