"""
Budget Aggregator

Current-month spending against the user's budget ceiling.

NOTE: The budget amount is user-global while the expense sum is computed
for one account. Both come back together; callers decide how to present
the pair.
"""

import datetime as dt
from typing import Callable, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta

from finance_tracker.audit.logger import AuditLogger
from finance_tracker.models.ledger import BudgetRecord, BudgetStatus, UserRecord
from finance_tracker.services.invalidation import (
    DASHBOARD_PATH,
    LoggingViewInvalidator,
    ViewInvalidator,
)
from finance_tracker.services.storage import LedgerStorageInterface, ScopedLedger
from finance_tracker.validation.validator import parse_amount


def month_bounds(today: dt.date) -> tuple[dt.date, dt.date]:
    """First and last day of `today`'s month, both inclusive."""
    first = today.replace(day=1)
    last = first + relativedelta(months=1, days=-1)
    return first, last


class BudgetAggregator:
    """Reads and upserts the single budget of a user."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        invalidator: Optional[ViewInvalidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._storage = storage
        self._invalidator = invalidator or LoggingViewInvalidator()
        self._audit = audit_logger or AuditLogger()
        self._today = today

    async def get_current_budget(
        self,
        user: UserRecord,
        account_id: UUID,
    ) -> BudgetStatus:
        """
        Budget row (or None) plus this month's EXPENSE total on the account.

        An account the user does not own contributes nothing, since the sum
        is filtered by owner.
        """
        ledger = ScopedLedger(self._storage, user)
        budget = await ledger.budget()

        first, last = month_bounds(self._today())
        expenses = await ledger.expenses_between(account_id, first, last)

        return BudgetStatus(budget=budget, current_expenses=expenses)

    async def update_budget(
        self,
        user: UserRecord,
        amount,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetRecord:
        """
        Create the user's budget or overwrite its amount.

        Raises:
            InvalidAmountError: Amount missing, malformed or not positive
        """
        value = parse_amount(amount)
        budget = await self._storage.upsert_budget(user.id, value)

        self._invalidator.invalidate(DASHBOARD_PATH)
        await self._audit.log_budget_updated(
            user_id=user.id,
            budget_id=budget.id,
            amount=str(budget.amount),
            correlation_id=correlation_id,
        )
        return budget
