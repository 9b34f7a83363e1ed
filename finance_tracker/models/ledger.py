"""
Core Data Models for Finance Tracker

These models define the strict schemas for all data flowing through the core.
They are designed to:
1. Enforce type safety at runtime
2. Keep every monetary value an exact Decimal
3. Be serializable at the presentation boundary only
4. Carry the owning user id on every record

DESIGN DECISION: A transaction stores a non-negative amount and derives
its sign from the transaction type. The account balance is a cached
aggregate: the opening balance plus those signed amounts. Only the ledger
engine moves it.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the form the store persists."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of monetary buckets a user can open."""
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


class TransactionType(str, Enum):
    """
    Direction of a ledger entry.

    INCOME adds its amount to the balance, EXPENSE subtracts it.
    """
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, Enum):
    """Processing status of a transaction."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecurringInterval(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# Suggested category tags. Transactions may carry any string,
# receipt scanning is constrained to EXPENSE_CATEGORIES.
INCOME_CATEGORIES: tuple[str, ...] = (
    "salary",
    "freelance",
    "investments",
    "business",
    "rental",
    "other-income",
)

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "housing",
    "transportation",
    "groceries",
    "utilities",
    "entertainment",
    "food",
    "shopping",
    "healthcare",
    "education",
    "personal",
    "travel",
    "insurance",
    "gifts",
    "bills",
    "other-expense",
)

DEFAULT_EXPENSE_CATEGORY = "other-expense"


# =============================================================================
# STORED RECORDS
# =============================================================================

class UserRecord(BaseModel):
    """
    Identity anchor.

    `external_id` is the identity provider's reference for the user.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    external_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Identity provider user reference"
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=255
    )
    name: Optional[str] = Field(
        default=None,
        max_length=200
    )
    created_at: dt.datetime = Field(default_factory=utcnow)


class AccountRecord(BaseModel):
    """
    A named monetary bucket.

    CRITICAL: `balance` is a cached aggregate. It must equal the opening
    balance plus the signed sum of the account's transactions after every
    committed mutation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType = AccountType.CURRENT
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3
    )
    balance: Decimal = Field(
        default=Decimal("0.00"),
        decimal_places=2,
        description="Signed balance, cached from the ledger"
    )
    is_default: bool = False
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    # Populated by listing queries only
    transaction_count: Optional[int] = Field(default=None, ge=0)


class TransactionRecord(BaseModel):
    """A single ledger entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    account_id: UUID
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Magnitude; the sign comes from `type`"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500
    )
    date: dt.date
    category: str = Field(
        ...,
        min_length=1,
        max_length=50
    )
    receipt_url: Optional[str] = None
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    next_recurring_date: Optional[dt.date] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class BudgetRecord(BaseModel):
    """Monthly spending ceiling. At most one per user."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2
    )
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


# =============================================================================
# INPUT DRAFTS
# =============================================================================

class AccountDraft(BaseModel):
    """
    Request to open an account.

    `balance` arrives as a decimal string and is parsed by the engine,
    so malformed input is reported as an invalid amount.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.CURRENT
    currency: str = Field(default="USD", min_length=3, max_length=3)
    balance: str = Field(default="0")
    is_default: bool = False


class TransactionDraft(BaseModel):
    """
    Request to record a transaction.

    Accepts snake_case or camelCase keys (`account_id` / `accountId`).
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    account_id: UUID
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: dt.date
    category: str = Field(..., min_length=1, max_length=50)
    receipt_url: Optional[str] = None
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    status: TransactionStatus = TransactionStatus.COMPLETED


class ReceiptDraft(BaseModel):
    """
    Fields proposed by the receipt classifier.

    CRITICAL: This is PROPOSED data. It pre-fills a transaction form;
    nothing is recorded until the user submits a TransactionDraft.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., decimal_places=2)
    date: Optional[dt.date] = None
    description: Optional[str] = None
    merchant_name: Optional[str] = None
    category: str = DEFAULT_EXPENSE_CATEGORY


# =============================================================================
# QUERY RESULTS
# =============================================================================

class AccountWithTransactions(BaseModel):
    """An account together with its ledger, newest first."""

    account: AccountRecord
    transactions: list[TransactionRecord] = Field(default_factory=list)

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)


class BudgetStatus(BaseModel):
    """
    Current-month spending against the user's budget.

    NOTE: `budget` is user-global while `current_expenses` is summed
    for a single account.
    """

    budget: Optional[BudgetRecord] = None
    current_expenses: Decimal = Decimal("0")


class ActionResult(BaseModel):
    """
    Uniform envelope returned by every mutating operation.

    `data` is already serialized (plain numbers, no Decimals).
    """

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: Exception) -> "ActionResult":
        return cls(
            success=False,
            error=str(exc),
            error_code=getattr(exc, "code", type(exc).__name__),
            details=dict(getattr(exc, "details", {}) or {}),
        )
