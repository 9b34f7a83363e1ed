"""
Balance Consistency Engine

CRITICAL INVARIANTS:
1. account.balance == opening balance + signed sum of the account's
   transactions after every committed mutation
2. Exactly one default account per user with at least one account

DESIGN DECISION: The engine decides WHAT changes (deltas, default flags,
recurrence dates); the store decides HOW it is applied atomically. Every
balance change reaches the store as a delta and is applied as
`balance = balance + delta`, never as a computed overwrite.

Order of every mutation:
1. Caller is already resolved by the Authorization Guard
2. Rate guard (transaction creation only)
3. Ownership lookups and validation
4. One atomic store call
5. View invalidation and audit, only after commit
"""

from typing import Iterable, Optional
from uuid import UUID

from finance_tracker.audit.logger import AuditLogger
from finance_tracker.ledger.rules import (
    next_recurring_date,
    reversal_deltas,
    signed_amount,
)
from finance_tracker.models.ledger import (
    AccountDraft,
    AccountRecord,
    TransactionDraft,
    TransactionRecord,
    UserRecord,
)
from finance_tracker.services.invalidation import (
    DASHBOARD_PATH,
    LoggingViewInvalidator,
    ViewInvalidator,
)
from finance_tracker.services.protection import (
    RateGuard,
    RateLimitedError,
    RequestBlockedError,
    TokenBucketProtection,
)
from finance_tracker.services.storage import LedgerStorageInterface, ScopedLedger
from finance_tracker.validation.validator import parse_amount


class BalanceEngine:
    """
    Applies ledger mutations while keeping cached balances exact.

    All methods take the resolved user explicitly.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        rate_guard: Optional[RateGuard] = None,
        invalidator: Optional[ViewInvalidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._rate_guard = rate_guard or RateGuard(TokenBucketProtection())
        self._invalidator = invalidator or LoggingViewInvalidator()
        self._audit = audit_logger or AuditLogger()

    def scoped(self, user: UserRecord) -> ScopedLedger:
        return ScopedLedger(self._storage, user)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        user: UserRecord,
        draft: AccountDraft,
        correlation_id: Optional[UUID] = None,
    ) -> AccountRecord:
        """
        Open an account with an opening balance.

        The first account of a user is always the default. The store runs
        the first-account check, the clearing of the old default and the
        insert as one unit.

        Raises:
            InvalidAmountError: Opening balance is not a decimal
        """
        balance = parse_amount(
            draft.balance,
            field="balance",
            allow_negative=True,
            allow_zero=True,
        )

        account = AccountRecord(
            user_id=user.id,
            name=draft.name,
            type=draft.type,
            currency=draft.currency.upper(),
            balance=balance,
            is_default=draft.is_default,
        )
        stored = await self._storage.create_account(account)

        self._invalidator.invalidate(DASHBOARD_PATH)
        await self._audit.log_account_created(
            user_id=user.id,
            account_id=stored.id,
            name=stored.name,
            balance=str(stored.balance),
            is_default=stored.is_default,
            correlation_id=correlation_id,
        )
        return stored

    async def set_default_account(
        self,
        user: UserRecord,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AccountRecord:
        """
        Raises:
            AccountNotFoundError: Missing or owned by someone else
        """
        account = await self._storage.set_default_account(user.id, account_id)

        self._invalidator.invalidate(DASHBOARD_PATH)
        await self._audit.log_default_account_changed(
            user_id=user.id,
            account_id=account.id,
            correlation_id=correlation_id,
        )
        return account

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def _consume_quota(
        self,
        user: UserRecord,
        correlation_id: Optional[UUID],
    ) -> None:
        try:
            await self._rate_guard.consume(user.id)
        except RateLimitedError as e:
            await self._audit.log_rate_limited(
                user_id=user.id,
                remaining=e.remaining,
                reset_in_seconds=e.reset_in_seconds,
                correlation_id=correlation_id,
            )
            raise
        except RequestBlockedError as e:
            await self._audit.log_request_blocked(
                user_id=user.id,
                reason=e.reason,
                correlation_id=correlation_id,
            )
            raise

    async def create_transaction(
        self,
        user: UserRecord,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionRecord:
        """
        Record a transaction and move its account's balance.

        Raises:
            RateLimitedError / RequestBlockedError: Before anything is read
            AccountNotFoundError: Account missing or not owned
        """
        await self._consume_quota(user, correlation_id)

        # Ownership first: a foreign account id fails before any write
        await self.scoped(user).account(draft.account_id)

        delta = signed_amount(draft.type, draft.amount)
        transaction = TransactionRecord(
            user_id=user.id,
            account_id=draft.account_id,
            type=draft.type,
            amount=draft.amount,
            description=draft.description,
            date=draft.date,
            category=draft.category,
            receipt_url=draft.receipt_url,
            is_recurring=draft.is_recurring,
            recurring_interval=draft.recurring_interval,
            next_recurring_date=(
                next_recurring_date(draft.date, draft.recurring_interval)
                if draft.is_recurring
                else None
            ),
            status=draft.status,
        )
        stored = await self._storage.create_transaction(transaction, delta)

        self._invalidator.invalidate_accounts([stored.account_id])
        await self._audit.log_transaction_created(
            user_id=user.id,
            transaction_id=stored.id,
            account_id=stored.account_id,
            delta=str(delta),
            correlation_id=correlation_id,
        )
        return stored

    async def bulk_delete_transactions(
        self,
        user: UserRecord,
        transaction_ids: Iterable[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete the caller's transactions among `transaction_ids`.

        Ids that do not exist or belong to another user are ignored.
        Each touched account moves by sum(EXPENSE) - sum(INCOME) of its
        deleted rows, all inside one store transaction.

        Returns:
            Number of deleted transactions
        """
        deleted, deltas = await self._storage.delete_transactions(
            user.id,
            list(transaction_ids),
            reversal_deltas,
        )
        if not deleted:
            return 0

        self._invalidator.invalidate_accounts(sorted(deltas, key=str))
        await self._audit.log_transactions_deleted(
            user_id=user.id,
            deleted=len(deleted),
            deltas={str(k): str(v) for k, v in deltas.items()},
            correlation_id=correlation_id,
        )
        return len(deleted)
