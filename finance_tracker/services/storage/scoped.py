"""
Owner-scoped view of the ledger store.

Every lookup is filtered by both the record id and the resolved user's id.
A record that does not exist and a record owned by someone else raise the
same NotFound error, so callers cannot discover other users' ids.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_tracker.models.ledger import (
    AccountRecord,
    AccountWithTransactions,
    BudgetRecord,
    TransactionRecord,
    UserRecord,
)
from finance_tracker.services.storage.interface import (
    AccountNotFoundError,
    LedgerStorageInterface,
    TransactionNotFoundError,
)


class ScopedLedger:
    """Ledger reads bound to one user."""

    def __init__(self, storage: LedgerStorageInterface, user: UserRecord):
        self._storage = storage
        self.user = user

    @property
    def user_id(self) -> UUID:
        return self.user.id

    async def account(self, account_id: UUID) -> AccountRecord:
        account = await self._storage.get_account(self.user_id, account_id)
        if account is None:
            raise AccountNotFoundError()
        return account

    async def accounts(self) -> list[AccountRecord]:
        return await self._storage.list_accounts(self.user_id)

    async def account_with_transactions(self, account_id: UUID) -> AccountWithTransactions:
        account = await self.account(account_id)
        transactions = await self._storage.list_account_transactions(
            self.user_id, account_id
        )
        return AccountWithTransactions(account=account, transactions=transactions)

    async def transaction(self, transaction_id: UUID) -> TransactionRecord:
        transaction = await self._storage.get_transaction(self.user_id, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        return transaction

    async def budget(self) -> Optional[BudgetRecord]:
        return await self._storage.get_budget(self.user_id)

    async def expenses_between(self, account_id: UUID, date_from, date_to) -> Decimal:
        return await self._storage.sum_expenses(
            self.user_id, account_id, date_from, date_to
        )
