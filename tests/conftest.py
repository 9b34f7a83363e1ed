"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database. External services
(Gemini, clocks) are replaced by fakes; no test touches the network.
"""

import datetime as dt
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID

import pytest
import pytest_asyncio

from finance_tracker.audit import AuditLogger
from finance_tracker.ledger import BalanceEngine, ledger_total
from finance_tracker.models.ledger import (
    AccountDraft,
    TransactionDraft,
    TransactionType,
    UserRecord,
)
from finance_tracker.services.invalidation import LoggingViewInvalidator
from finance_tracker.services.protection import RateGuard, TokenBucketProtection
from finance_tracker.services.storage import (
    DatabaseClient,
    SQLAlchemyAuditStorage,
    SQLAlchemyLedgerStorage,
)


OPENING_BALANCE = Decimal("100.00")


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGeminiModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text: str = "{}", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest_asyncio.fixture
async def db_client():
    client = DatabaseClient(url="sqlite+aiosqlite:///:memory:", echo=False)
    await client.init_models()
    yield client
    await client.dispose()


@pytest.fixture
def storage(db_client):
    return SQLAlchemyLedgerStorage(db_client)


@pytest.fixture
def audit_storage(db_client):
    return SQLAlchemyAuditStorage(db_client)


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def invalidator():
    return LoggingViewInvalidator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def protection(clock):
    return TokenBucketProtection(
        capacity=10,
        refill_rate=10,
        interval_seconds=3600,
        clock=clock,
    )


@pytest.fixture
def engine(storage, protection, invalidator, audit_logger):
    return BalanceEngine(
        storage,
        rate_guard=RateGuard(protection),
        invalidator=invalidator,
        audit_logger=audit_logger,
    )


@pytest_asyncio.fixture
async def user(storage):
    return await storage.create_user(
        UserRecord(external_id="user_alice", email="alice@example.com", name="Alice")
    )


@pytest_asyncio.fixture
async def other_user(storage):
    return await storage.create_user(
        UserRecord(external_id="user_bob", email="bob@example.com", name="Bob")
    )


@pytest_asyncio.fixture
async def account(engine, user):
    return await engine.create_account(
        user, AccountDraft(name="Checking", balance=str(OPENING_BALANCE))
    )


def transaction_draft(
    account_id: UUID,
    amount: str,
    transaction_type: TransactionType = TransactionType.EXPENSE,
    date: dt.date = dt.date(2024, 3, 15),
    **extra,
) -> TransactionDraft:
    return TransactionDraft(
        account_id=account_id,
        type=transaction_type,
        amount=Decimal(amount),
        date=date,
        category=extra.pop("category", "food"),
        **extra,
    )


async def balance_of(storage, user, account_id) -> Decimal:
    account = await storage.get_account(user.id, account_id)
    return account.balance


async def ledger_sum(storage, user, account_id) -> Decimal:
    return ledger_total(await storage.list_account_transactions(user.id, account_id))
