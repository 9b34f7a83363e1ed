"""
Balance rules.

Pure functions shared by the engine, the store and the seed generator.
The reversal rule is the exact inverse of the delta rule, so creating and
then deleting any set of transactions leaves every balance unchanged.
"""

import datetime as dt
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta

from finance_tracker.models.ledger import (
    RecurringInterval,
    TransactionRecord,
    TransactionType,
)


_INTERVAL_STEPS = {
    RecurringInterval.DAILY: relativedelta(days=1),
    RecurringInterval.WEEKLY: relativedelta(weeks=1),
    RecurringInterval.MONTHLY: relativedelta(months=1),
    RecurringInterval.YEARLY: relativedelta(years=1),
}


def signed_amount(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """+amount for INCOME, -amount for EXPENSE."""
    if transaction_type == TransactionType.EXPENSE:
        return -amount
    return amount


def reversal_deltas(transactions: Iterable[TransactionRecord]) -> dict[UUID, Decimal]:
    """
    Per-account balance change that undoes the given transactions.

    For each account: sum(EXPENSE amounts) - sum(INCOME amounts).
    """
    deltas: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
    for transaction in transactions:
        deltas[transaction.account_id] -= signed_amount(transaction.type, transaction.amount)
    return dict(deltas)


def ledger_total(transactions: Iterable[TransactionRecord]) -> Decimal:
    """Signed sum of a ledger; a balance must equal its opening balance plus this."""
    return sum(
        (signed_amount(t.type, t.amount) for t in transactions),
        Decimal("0"),
    )


def next_recurring_date(
    start: dt.date,
    interval: Optional[RecurringInterval],
) -> Optional[dt.date]:
    """
    One calendar interval after `start`.

    Month and year steps clamp to the last day of the target month:
    2024-01-31 MONTHLY is 2024-02-29, 2024-02-29 YEARLY is 2025-02-28.
    """
    if interval is None:
        return None
    return start + _INTERVAL_STEPS[RecurringInterval(interval)]
