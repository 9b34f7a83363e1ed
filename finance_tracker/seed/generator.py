"""
Synthetic Ledger Generator

Produces randomized history for the demo account: for every day from
`days` ago through today, one to three transactions, each INCOME with
probability 0.4 and EXPENSE otherwise. The category is uniform over the
type's list and the amount uniform over the category's range.

CRITICAL: Seeding is a reset. It deletes the account's ledger and
OVERWRITES the balance with the generated total. Normal mutations never
work this way; they go through the balance engine as increments.
"""

import datetime as dt
import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from finance_tracker.audit.logger import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.ledger.rules import ledger_total
from finance_tracker.models.ledger import (
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from finance_tracker.services.storage import LedgerStorageInterface


INCOME_PROBABILITY = 0.4

CATEGORY_RANGES: dict[TransactionType, tuple[tuple[str, int, int], ...]] = {
    TransactionType.INCOME: (
        ("salary", 5000, 8000),
        ("freelance", 1000, 3000),
        ("investments", 500, 2000),
        ("other-income", 100, 1000),
    ),
    TransactionType.EXPENSE: (
        ("housing", 1000, 2000),
        ("transportation", 100, 500),
        ("groceries", 200, 600),
        ("utilities", 100, 300),
        ("entertainment", 50, 200),
        ("food", 50, 150),
        ("shopping", 100, 500),
        ("healthcare", 100, 1000),
        ("education", 200, 1000),
        ("travel", 500, 2000),
    ),
}


def _quantize_currency(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _decimal_from_range(rng: random.Random, min_value: float, max_value: float) -> Decimal:
    sampled = rng.uniform(min_value, max_value)
    return _quantize_currency(Decimal(str(sampled)))


@dataclass(frozen=True)
class SeedResult:
    account_id: UUID
    created: int
    balance: Decimal

    @property
    def message(self) -> str:
        return f"Created {self.created} transactions"


class SyntheticLedgerGenerator:
    """Builds demo transactions. Pass a seeded `random.Random` for repeatable output."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _pick(self, transaction_type: TransactionType) -> tuple[str, Decimal]:
        name, low, high = self.rng.choice(CATEGORY_RANGES[transaction_type])
        return name, _decimal_from_range(self.rng, low, high)

    def generate(
        self,
        user_id: UUID,
        account_id: UUID,
        days: int = 90,
        today: Optional[dt.date] = None,
    ) -> list[TransactionRecord]:
        today = today or dt.date.today()
        transactions: list[TransactionRecord] = []

        for offset in range(days, -1, -1):
            day = today - dt.timedelta(days=offset)
            stamp = dt.datetime.combine(day, dt.time.min)

            for _ in range(self.rng.randint(1, 3)):
                transaction_type = (
                    TransactionType.INCOME
                    if self.rng.random() < INCOME_PROBABILITY
                    else TransactionType.EXPENSE
                )
                category, amount = self._pick(transaction_type)
                verb = "Received" if transaction_type == TransactionType.INCOME else "Paid for"

                transactions.append(TransactionRecord(
                    user_id=user_id,
                    account_id=account_id,
                    type=transaction_type,
                    amount=amount,
                    description=f"{verb} {category}",
                    date=day,
                    category=category,
                    status=TransactionStatus.COMPLETED,
                    created_at=stamp,
                    updated_at=stamp,
                ))

        return transactions


async def seed_transactions(
    storage: LedgerStorageInterface,
    account_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
    days: Optional[int] = None,
    generator: Optional[SyntheticLedgerGenerator] = None,
    today: Optional[dt.date] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> SeedResult:
    """
    Replace the demo account's ledger with generated history.

    Raises:
        AccountNotFoundError: The demo account does not exist for the user
        StorageError: The replacement failed and was rolled back
    """
    settings = get_settings().seed
    account_id = account_id or settings.account_id
    user_id = user_id or settings.user_id
    days = days if days is not None else settings.days
    generator = generator or SyntheticLedgerGenerator()

    transactions = generator.generate(user_id, account_id, days=days, today=today)
    balance = ledger_total(transactions)

    created = await storage.replace_account_transactions(
        user_id,
        account_id,
        transactions,
        balance,
    )

    await (audit_logger or AuditLogger()).log_ledger_seeded(
        account_id=account_id,
        created=created,
        balance=str(balance),
    )
    return SeedResult(account_id=account_id, created=created, balance=balance)
