"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run SQLite locally and PostgreSQL in production
2. Use an in-memory database for testing
3. Keep business logic decoupled from storage implementation

Every multi-row mutation is a single method here, and each implementation
MUST run it as one atomic unit: all writes commit together or none do.
Balance changes are expressed as deltas so implementations can apply them
as increments rather than overwrites.

Every read and write takes the owning user id and filters by it.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

from finance_tracker.models.ledger import (
    AccountRecord,
    BudgetRecord,
    TransactionRecord,
    UserRecord,
)
from finance_tracker.models.audit import AuditEvent


# Computes per-account balance deltas for a set of rows about to be deleted
ReversalFunc = Callable[[list[TransactionRecord]], dict[UUID, Decimal]]


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_user_by_external_id(self, external_id: str) -> Optional[UserRecord]:
        """
        Look up a user by identity provider reference.

        Returns:
            The user if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_user(self, user: UserRecord) -> UserRecord:
        """
        Insert a new user.

        Raises:
            DuplicateError: If the external id is already registered
            StorageError: If the insert fails
        """
        pass

    # -------------------------------------------------------------------------
    # Reads (always owner-scoped)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_account(self, user_id: UUID, account_id: UUID) -> Optional[AccountRecord]:
        """Retrieve an account owned by the user, or None."""
        pass

    @abstractmethod
    async def list_accounts(self, user_id: UUID) -> list[AccountRecord]:
        """
        List the user's accounts, newest first.

        Each record carries `transaction_count`.
        """
        pass

    @abstractmethod
    async def list_account_transactions(
        self,
        user_id: UUID,
        account_id: UUID,
    ) -> list[TransactionRecord]:
        """List an account's transactions, newest first."""
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        """Retrieve a transaction owned by the user, or None."""
        pass

    @abstractmethod
    async def sum_expenses(
        self,
        user_id: UUID,
        account_id: UUID,
        date_from: date,
        date_to: date,
    ) -> Decimal:
        """
        Sum EXPENSE amounts on an account within [date_from, date_to].

        Returns:
            The total, Decimal('0') when there are none
        """
        pass

    @abstractmethod
    async def get_budget(self, user_id: UUID) -> Optional[BudgetRecord]:
        """Retrieve the user's budget, or None."""
        pass

    # -------------------------------------------------------------------------
    # Atomic mutations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_account(self, account: AccountRecord) -> AccountRecord:
        """
        Insert an account, keeping exactly one default per user.

        In one atomic unit: if the user has no accounts yet the new account
        is made default regardless of the requested flag; if the new account
        is default, every other account of the user loses the flag.

        Returns:
            The stored account (with the effective default flag)

        Raises:
            UserNotFoundError: If the owning user does not exist
        """
        pass

    @abstractmethod
    async def set_default_account(self, user_id: UUID, account_id: UUID) -> AccountRecord:
        """
        Make one account the user's only default, atomically.

        Raises:
            AccountNotFoundError: If the user owns no such account
            UserNotFoundError: If the user does not exist
        """
        pass

    @abstractmethod
    async def create_transaction(
        self,
        transaction: TransactionRecord,
        balance_delta: Decimal,
    ) -> TransactionRecord:
        """
        Insert a transaction and increment its account's balance by delta.

        Both writes commit together or not at all.

        Raises:
            AccountNotFoundError: If the account is not owned by the user
        """
        pass

    @abstractmethod
    async def delete_transactions(
        self,
        user_id: UUID,
        transaction_ids: Iterable[UUID],
        reverse: ReversalFunc,
    ) -> tuple[list[TransactionRecord], dict[UUID, Decimal]]:
        """
        Delete the owned subset of transactions and reverse their effect.

        The owned rows are selected inside the same atomic unit, `reverse`
        computes the per-account deltas, and each delta is applied as an
        increment. Ids the user does not own are ignored.

        Returns:
            (deleted_transactions, applied_deltas)
        """
        pass

    @abstractmethod
    async def replace_account_transactions(
        self,
        user_id: UUID,
        account_id: UUID,
        transactions: list[TransactionRecord],
        balance: Decimal,
    ) -> int:
        """
        Replace an account's whole ledger and OVERWRITE its balance.

        Used only to reset demo data.

        Returns:
            Number of inserted transactions
        """
        pass

    @abstractmethod
    async def upsert_budget(self, user_id: UUID, amount: Decimal) -> BudgetRecord:
        """Create the user's budget or overwrite its amount."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one request, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    code = "StoreError"


class NotFoundError(StorageError):
    """Entity not found in storage, or not owned by the caller."""
    code = "NotFound"


class UserNotFoundError(NotFoundError):
    code = "UserNotFound"

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class AccountNotFoundError(NotFoundError):
    code = "AccountNotFound"

    def __init__(self, message: str = "Account not found"):
        super().__init__(message)


class TransactionNotFoundError(NotFoundError):
    code = "TransactionNotFound"

    def __init__(self, message: str = "Transaction not found"):
        super().__init__(message)


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    code = "Duplicate"
