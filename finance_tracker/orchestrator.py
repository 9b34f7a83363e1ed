"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the operations
exposed to the presentation layer:
1. Accounts (create, list, switch default, view with ledger)
2. Transactions (create, bulk delete, read, scan receipt)
3. Budget (current status, upsert)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every call resolves the caller through the Authorization Guard first
- Mutations return an ActionResult envelope; known failures become
  `success=False` with a message and code, programming errors propagate
- Reads return serialized data and raise on failure
- Decimals become numbers only in `serialization`

Each flow method takes the verified external user id as its first argument.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional
from uuid import UUID

from finance_tracker.agents.receipt_scanner import GeminiReceiptScanner, ReceiptError
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.auth import AuthorizationGuard, UnauthorizedError
from finance_tracker.budget import BudgetAggregator
from finance_tracker.ledger import BalanceEngine
from finance_tracker.models.ledger import ActionResult, UserRecord
from finance_tracker.serialization import (
    serialize_account,
    serialize_account_with_transactions,
    serialize_budget,
    serialize_budget_status,
    serialize_receipt,
    serialize_transaction,
)
from finance_tracker.services.invalidation import LoggingViewInvalidator, ViewInvalidator
from finance_tracker.services.protection import (
    ProtectionError,
    ProtectionServiceInterface,
    RateGuard,
    TokenBucketProtection,
)
from finance_tracker.services.storage import (
    AccountNotFoundError,
    DatabaseClient,
    LedgerStorageInterface,
    NotFoundError,
    SQLAlchemyAuditStorage,
    SQLAlchemyLedgerStorage,
    StorageError,
    TransactionNotFoundError,
)
from finance_tracker.validation import (
    InvalidAmountError,
    InvalidDraftError,
    coerce_uuid,
    validate_account_draft,
    validate_transaction_draft,
)


# Failures a mutation reports in its envelope instead of raising
DOMAIN_ERRORS = (
    UnauthorizedError,
    StorageError,
    InvalidAmountError,
    InvalidDraftError,
    ProtectionError,
    ReceiptError,
)

STORE_FAILURE_MESSAGE = "The change could not be saved. Nothing was modified."


def failure_result(error: Exception) -> ActionResult:
    """Envelope for a known failure. Store internals are not exposed."""
    if isinstance(error, StorageError) and not isinstance(error, NotFoundError):
        return ActionResult(
            success=False,
            error=STORE_FAILURE_MESSAGE,
            error_code=StorageError.code,
        )
    return ActionResult.fail(error)


class _Flow:
    """Shared caller resolution and envelope handling."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        guard: Optional[AuthorizationGuard] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._guard = guard or AuthorizationGuard(storage, self._audit)

    async def _resolve(
        self,
        external_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> UserRecord:
        return await self._guard.resolve_user(external_id, correlation_id)

    async def _envelope(
        self,
        operation: str,
        external_id: Optional[str],
        action: Callable[[UserRecord, UUID], Awaitable[Any]],
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        correlation_id = correlation_id or create_correlation_id()
        user = None
        try:
            user = await self._resolve(external_id, correlation_id)
            data = await action(user, correlation_id)
        except DOMAIN_ERRORS as e:
            await self._audit.log_operation_failed(
                operation=operation,
                error_code=getattr(e, "code", type(e).__name__),
                error_message=str(e),
                user_id=user.id if user else None,
                correlation_id=correlation_id,
            )
            return failure_result(e)
        return ActionResult.ok(data)


class AccountFlow(_Flow):
    """Account operations."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        engine: Optional[BalanceEngine] = None,
        guard: Optional[AuthorizationGuard] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(storage, guard, audit_logger)
        self._engine = engine or BalanceEngine(storage, audit_logger=self._audit)

    async def create_account(
        self,
        external_id: Optional[str],
        payload: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Open an account. `payload`: name, type, balance (decimal string), is_default."""
        async def action(user: UserRecord, cid: UUID) -> dict:
            draft = validate_account_draft(payload)
            account = await self._engine.create_account(user, draft, cid)
            return serialize_account(account)

        return await self._envelope("create_account", external_id, action, correlation_id)

    async def get_user_accounts(self, external_id: Optional[str]) -> list[dict]:
        """Accounts newest first, each with `transaction_count`. Raises on failure."""
        user = await self._resolve(external_id)
        accounts = await self._engine.scoped(user).accounts()
        return [serialize_account(account) for account in accounts]

    async def update_default_account(
        self,
        external_id: Optional[str],
        account_id: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        async def action(user: UserRecord, cid: UUID) -> dict:
            target = coerce_uuid(account_id)
            if target is None:
                raise AccountNotFoundError()
            account = await self._engine.set_default_account(user, target, cid)
            return serialize_account(account)

        return await self._envelope("update_default_account", external_id, action, correlation_id)

    async def get_account_with_transactions(
        self,
        external_id: Optional[str],
        account_id: Any,
    ) -> dict:
        """
        Account plus its transactions (newest first) and their count.

        Raises:
            AccountNotFoundError: Missing or owned by someone else
        """
        user = await self._resolve(external_id)
        target = coerce_uuid(account_id)
        if target is None:
            raise AccountNotFoundError()
        view = await self._engine.scoped(user).account_with_transactions(target)
        return serialize_account_with_transactions(view)


class TransactionFlow(_Flow):
    """Transaction operations and receipt scanning."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        engine: Optional[BalanceEngine] = None,
        scanner: Optional[GeminiReceiptScanner] = None,
        guard: Optional[AuthorizationGuard] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(storage, guard, audit_logger)
        self._engine = engine or BalanceEngine(storage, audit_logger=self._audit)
        self._scanner = scanner

    @property
    def scanner(self) -> GeminiReceiptScanner:
        # Gemini is configured on first scan so the ledger works without an API key
        if self._scanner is None:
            self._scanner = GeminiReceiptScanner(audit_logger=self._audit)
        return self._scanner

    async def create_transaction(
        self,
        external_id: Optional[str],
        payload: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Record a transaction. Keys may be snake_case or camelCase."""
        async def action(user: UserRecord, cid: UUID) -> dict:
            draft = validate_transaction_draft(payload)
            transaction = await self._engine.create_transaction(user, draft, cid)
            return serialize_transaction(transaction)

        return await self._envelope("create_transaction", external_id, action, correlation_id)

    async def bulk_delete_transactions(
        self,
        external_id: Optional[str],
        transaction_ids: Iterable[Any],
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Delete the caller's transactions among the ids; the rest are ignored."""
        async def action(user: UserRecord, cid: UUID) -> dict:
            ids = [tid for tid in map(coerce_uuid, transaction_ids) if tid is not None]
            deleted = await self._engine.bulk_delete_transactions(user, ids, cid)
            return {"deleted": deleted}

        return await self._envelope("bulk_delete_transactions", external_id, action, correlation_id)

    async def get_transaction(self, external_id: Optional[str], transaction_id: Any) -> dict:
        """
        Raises:
            TransactionNotFoundError: Missing or owned by someone else
        """
        user = await self._resolve(external_id)
        target = coerce_uuid(transaction_id)
        if target is None:
            raise TransactionNotFoundError()
        transaction = await self._engine.scoped(user).transaction(target)
        return serialize_transaction(transaction)

    async def scan_receipt(
        self,
        image_bytes: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict:
        """
        Draft fields for a receipt image, `{}` if it is not a receipt.

        Nothing is recorded; the caller submits create_transaction.
        """
        draft = await self.scanner.scan(
            image_bytes,
            mime_type,
            correlation_id or create_correlation_id(),
        )
        return serialize_receipt(draft)


class BudgetFlow(_Flow):
    """Budget operations."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        aggregator: Optional[BudgetAggregator] = None,
        guard: Optional[AuthorizationGuard] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(storage, guard, audit_logger)
        self._aggregator = aggregator or BudgetAggregator(storage, audit_logger=self._audit)

    async def get_current_budget(self, external_id: Optional[str], account_id: Any) -> dict:
        """`{"budget": dict | None, "current_expenses": float}` for the current month."""
        user = await self._resolve(external_id)
        target = coerce_uuid(account_id)
        if target is None:
            raise AccountNotFoundError()
        status = await self._aggregator.get_current_budget(user, target)
        return serialize_budget_status(status)

    async def update_budget(
        self,
        external_id: Optional[str],
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ActionResult:
        async def action(user: UserRecord, cid: UUID) -> Optional[dict]:
            budget = await self._aggregator.update_budget(user, amount, cid)
            return serialize_budget(budget)

        return await self._envelope("update_budget", external_id, action, correlation_id)


@dataclass
class AppComponents:
    """Everything a host needs, wired to one database."""

    client: DatabaseClient
    storage: SQLAlchemyLedgerStorage
    guard: AuthorizationGuard
    account_flow: AccountFlow
    transaction_flow: TransactionFlow
    budget_flow: BudgetFlow
    audit_logger: AuditLogger
    invalidator: ViewInvalidator

    async def init(self) -> None:
        """Create missing tables."""
        await self.client.init_models()

    async def close(self) -> None:
        await self.client.dispose()


def create_app_components(
    database_url: Optional[str] = None,
    scanner: Optional[GeminiReceiptScanner] = None,
    protection: Optional[ProtectionServiceInterface] = None,
    invalidator: Optional[ViewInvalidator] = None,
    persist_audit: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        database_url: Overrides DATABASE_URL
        scanner: Receipt scanner; defaults to Gemini on first use
        protection: Quota service; defaults to the in-process token bucket
        invalidator: Receiver of stale-view signals
        persist_audit: Also write audit events to the audit_events table
    """
    client = DatabaseClient(url=database_url)
    storage = SQLAlchemyLedgerStorage(client)
    audit_logger = AuditLogger(SQLAlchemyAuditStorage(client) if persist_audit else None)
    invalidator = invalidator or LoggingViewInvalidator()

    guard = AuthorizationGuard(storage, audit_logger)
    engine = BalanceEngine(
        storage,
        rate_guard=RateGuard(protection or TokenBucketProtection()),
        invalidator=invalidator,
        audit_logger=audit_logger,
    )
    aggregator = BudgetAggregator(storage, invalidator=invalidator, audit_logger=audit_logger)

    return AppComponents(
        client=client,
        storage=storage,
        guard=guard,
        account_flow=AccountFlow(storage, engine=engine, guard=guard, audit_logger=audit_logger),
        transaction_flow=TransactionFlow(
            storage,
            engine=engine,
            scanner=scanner,
            guard=guard,
            audit_logger=audit_logger,
        ),
        budget_flow=BudgetFlow(storage, aggregator=aggregator, guard=guard, audit_logger=audit_logger),
        audit_logger=audit_logger,
        invalidator=invalidator,
    )
