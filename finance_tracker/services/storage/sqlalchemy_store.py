"""
SQLAlchemy Storage Implementation

DESIGN DECISION: The ledger lives in a relational store because the
balance-consistency rules depend on real transactions:
1. Inserting a row and moving the balance commit together
2. Balances move with `balance = balance + :delta`, so concurrent
   writers never lose each other's increments
3. Rows read for a bulk delete are locked (`FOR UPDATE`) where the
   backend supports it
4. Money is stored as integer cents, so the SQL increments stay exact
   on backends without a decimal type (SQLite)
5. Account-default changes lock the owning user row, and a partial
   unique index allows at most one default account per user

Two SQLAlchemy async backends are supported: SQLite (aiosqlite) locally
and in tests, PostgreSQL in production.

Every mutation runs inside `session_factory.begin()`; an exception
anywhere in the block rolls the whole unit back.
"""

import json
from contextlib import asynccontextmanager
import datetime as dt
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    delete,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from finance_tracker.config import get_settings
from finance_tracker.models.ledger import (
    AccountRecord,
    AccountType,
    BudgetRecord,
    RecurringInterval,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    UserRecord,
    utcnow,
)
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_tracker.services.storage.interface import (
    AccountNotFoundError,
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    ReversalFunc,
    StorageError,
    UserNotFoundError,
)


logger = structlog.get_logger(__name__)


class Cents(TypeDecorator):
    """
    Decimal amounts stored as integer cents.

    Binds reject values with more than two decimal places instead of
    rounding them. Results come back as 2-dp Decimals.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        cents = amount.scaleb(2)
        if cents != cents.to_integral_value():
            raise ValueError(f"Amount has more than two decimal places: {value}")
        return int(cents)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-2)


MONEY = Cents()


# =============================================================================
# TABLES
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class AccountRow(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        # At most one default account per user
        Index(
            "uq_accounts_user_default",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    type: Mapped[AccountType] = mapped_column(SQLEnum(AccountType, name="account_type"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"))
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType, name="transaction_type"))
    amount: Mapped[Decimal] = mapped_column(MONEY)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date)
    category: Mapped[str] = mapped_column(String(50))
    receipt_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurring_interval: Mapped[Optional[RecurringInterval]] = mapped_column(
        SQLEnum(RecurringInterval, name="recurring_interval"), nullable=True
    )
    next_recurring_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus, name="transaction_status"),
        default=TransactionStatus.COMPLETED,
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class BudgetRow(Base):
    __tablename__ = "budgets"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    amount: Mapped[Decimal] = mapped_column(MONEY)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[UUID] = mapped_column(primary_key=True)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, index=True)
    event_type: Mapped[str] = mapped_column(String(64))
    severity: Mapped[str] = mapped_column(String(16))
    user_id: Mapped[Optional[UUID]] = mapped_column(nullable=True, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    entity_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    correlation_id: Mapped[Optional[UUID]] = mapped_column(nullable=True, index=True)
    description: Mapped[str] = mapped_column(String(500))
    details_json: Mapped[str] = mapped_column(Text, default="")
    error_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)


# =============================================================================
# CONNECTION
# =============================================================================

class DatabaseClient:
    """
    Low-level database wrapper.

    Owns the async engine and the session factory shared by the storages.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings().database
        self._url = url or settings.url
        self._echo = settings.echo if echo is None else echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def connect(self) -> AsyncEngine:
        """Create the engine on first use."""
        if self._engine is None:
            kwargs = {"echo": self._echo}
            if self._url.startswith("sqlite") and ":memory:" in self._url:
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            try:
                self._engine = create_async_engine(self._url, **kwargs)
            except (SQLAlchemyError, ImportError, ValueError) as e:
                raise StorageError(f"Failed to create database engine: {e}") from e
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.connect(),
                expire_on_commit=False,
            )
        return self._session_factory

    async def init_models(self) -> None:
        """Create all tables that do not exist yet."""
        try:
            async with self.connect().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {e}") from e

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class SQLAlchemyLedgerStorage(LedgerStorageInterface):
    """
    SQLAlchemy implementation of ledger storage.

    Each public method is one database transaction.
    """

    def __init__(self, client: Optional[DatabaseClient] = None):
        self._client = client or DatabaseClient()

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        """Run a block atomically, translating driver errors to StorageError."""
        try:
            async with self._client.session_factory.begin() as session:
                yield session
        except StorageError:
            raise
        except SQLAlchemyError as e:
            logger.error("storage_failed", action=action, error=str(e))
            raise StorageError(f"Failed to {action}: {e}") from e

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _user_from_row(row: UserRow) -> UserRecord:
        return UserRecord(
            id=row.id,
            external_id=row.external_id,
            email=row.email,
            name=row.name,
            created_at=row.created_at,
        )

    @staticmethod
    def _account_from_row(
        row: AccountRow,
        transaction_count: Optional[int] = None,
    ) -> AccountRecord:
        return AccountRecord(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            type=row.type,
            currency=row.currency,
            balance=row.balance,
            is_default=row.is_default,
            created_at=row.created_at,
            updated_at=row.updated_at,
            transaction_count=transaction_count,
        )

    @staticmethod
    def _transaction_from_row(row: TransactionRow) -> TransactionRecord:
        return TransactionRecord(
            id=row.id,
            user_id=row.user_id,
            account_id=row.account_id,
            type=row.type,
            amount=row.amount,
            description=row.description,
            date=row.date,
            category=row.category,
            receipt_url=row.receipt_url,
            is_recurring=row.is_recurring,
            recurring_interval=row.recurring_interval,
            next_recurring_date=row.next_recurring_date,
            status=row.status,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _transaction_to_row(record: TransactionRecord) -> TransactionRow:
        return TransactionRow(
            id=record.id,
            user_id=record.user_id,
            account_id=record.account_id,
            type=record.type,
            amount=record.amount,
            description=record.description,
            date=record.date,
            category=record.category,
            receipt_url=record.receipt_url,
            is_recurring=record.is_recurring,
            recurring_interval=record.recurring_interval,
            next_recurring_date=record.next_recurring_date,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _budget_from_row(row: BudgetRow) -> BudgetRecord:
        return BudgetRecord(
            id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def get_user_by_external_id(self, external_id: str) -> Optional[UserRecord]:
        async with self._transaction("get user") as session:
            row = await session.scalar(
                select(UserRow).where(UserRow.external_id == external_id)
            )
            return self._user_from_row(row) if row else None

    async def create_user(self, user: UserRecord) -> UserRecord:
        try:
            async with self._transaction("create user") as session:
                session.add(UserRow(
                    id=user.id,
                    external_id=user.external_id,
                    email=user.email,
                    name=user.name,
                    created_at=user.created_at,
                ))
                await session.flush()
        except StorageError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise DuplicateError(f"User already registered: {user.external_id}") from e
            raise
        return user

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_account(self, user_id: UUID, account_id: UUID) -> Optional[AccountRecord]:
        async with self._transaction("get account") as session:
            row = await session.scalar(
                select(AccountRow).where(
                    AccountRow.id == account_id,
                    AccountRow.user_id == user_id,
                )
            )
            return self._account_from_row(row) if row else None

    async def list_accounts(self, user_id: UUID) -> list[AccountRecord]:
        counts = (
            select(
                TransactionRow.account_id,
                func.count(TransactionRow.id).label("transaction_count"),
            )
            .group_by(TransactionRow.account_id)
            .subquery()
        )
        stmt = (
            select(AccountRow, func.coalesce(counts.c.transaction_count, 0))
            .outerjoin(counts, counts.c.account_id == AccountRow.id)
            .where(AccountRow.user_id == user_id)
            .order_by(AccountRow.created_at.desc())
        )
        async with self._transaction("list accounts") as session:
            result = await session.execute(stmt)
            return [
                self._account_from_row(row, int(count))
                for row, count in result.all()
            ]

    async def list_account_transactions(
        self,
        user_id: UUID,
        account_id: UUID,
    ) -> list[TransactionRecord]:
        stmt = (
            select(TransactionRow)
            .where(
                TransactionRow.account_id == account_id,
                TransactionRow.user_id == user_id,
            )
            .order_by(TransactionRow.date.desc(), TransactionRow.created_at.desc())
        )
        async with self._transaction("list transactions") as session:
            rows = (await session.scalars(stmt)).all()
            return [self._transaction_from_row(row) for row in rows]

    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        async with self._transaction("get transaction") as session:
            row = await session.scalar(
                select(TransactionRow).where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.user_id == user_id,
                )
            )
            return self._transaction_from_row(row) if row else None

    async def sum_expenses(
        self,
        user_id: UUID,
        account_id: UUID,
        date_from: dt.date,
        date_to: dt.date,
    ) -> Decimal:
        stmt = select(func.sum(TransactionRow.amount)).where(
            TransactionRow.user_id == user_id,
            TransactionRow.account_id == account_id,
            TransactionRow.type == TransactionType.EXPENSE,
            TransactionRow.date >= date_from,
            TransactionRow.date <= date_to,
        )
        async with self._transaction("sum expenses") as session:
            total = await session.scalar(stmt)
        return total if total is not None else Decimal("0")

    async def get_budget(self, user_id: UUID) -> Optional[BudgetRecord]:
        async with self._transaction("get budget") as session:
            row = await session.scalar(
                select(BudgetRow).where(BudgetRow.user_id == user_id)
            )
            return self._budget_from_row(row) if row else None

    # -------------------------------------------------------------------------
    # Atomic mutations
    # -------------------------------------------------------------------------

    @staticmethod
    async def _lock_user(session: AsyncSession, user_id: UUID) -> None:
        """Serialize default-flag changes for one user (`FOR UPDATE` on the user row)."""
        locked = await session.scalar(
            select(UserRow.id).where(UserRow.id == user_id).with_for_update()
        )
        if locked is None:
            raise UserNotFoundError()

    async def create_account(self, account: AccountRecord) -> AccountRecord:
        async with self._transaction("create account") as session:
            await self._lock_user(session, account.user_id)
            existing = await session.scalar(
                select(func.count(AccountRow.id)).where(AccountRow.user_id == account.user_id)
            )
            # First account is always the default
            is_default = account.is_default or not existing

            if is_default:
                await session.execute(
                    update(AccountRow)
                    .where(
                        AccountRow.user_id == account.user_id,
                        AccountRow.is_default.is_(True),
                    )
                    .values(is_default=False)
                    .execution_options(synchronize_session=False)
                )

            row = AccountRow(
                id=account.id,
                user_id=account.user_id,
                name=account.name,
                type=account.type,
                currency=account.currency,
                balance=account.balance,
                is_default=is_default,
                created_at=account.created_at,
                updated_at=account.updated_at,
            )
            session.add(row)
            await session.flush()

        return account.model_copy(update={"is_default": is_default})

    async def set_default_account(self, user_id: UUID, account_id: UUID) -> AccountRecord:
        async with self._transaction("set default account") as session:
            await self._lock_user(session, user_id)
            owned = await session.scalar(
                select(AccountRow.id).where(
                    AccountRow.id == account_id,
                    AccountRow.user_id == user_id,
                )
            )
            if owned is None:
                raise AccountNotFoundError()

            # Clear before set: the unique index is checked per row.
            # Both steps commit together, so readers never see the gap.
            await session.execute(
                update(AccountRow)
                .where(
                    AccountRow.user_id == user_id,
                    AccountRow.is_default.is_(True),
                    AccountRow.id != account_id,
                )
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                update(AccountRow)
                .where(AccountRow.id == account_id)
                .values(is_default=True)
                .execution_options(synchronize_session=False)
            )

            row = await session.get(AccountRow, account_id)
            return self._account_from_row(row)

    async def create_transaction(
        self,
        transaction: TransactionRecord,
        balance_delta: Decimal,
    ) -> TransactionRecord:
        async with self._transaction("create transaction") as session:
            result = await session.execute(
                update(AccountRow)
                .where(
                    AccountRow.id == transaction.account_id,
                    AccountRow.user_id == transaction.user_id,
                )
                .values(
                    balance=AccountRow.balance + balance_delta,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AccountNotFoundError()

            session.add(self._transaction_to_row(transaction))
            await session.flush()

        return transaction

    async def delete_transactions(
        self,
        user_id: UUID,
        transaction_ids: Iterable[UUID],
        reverse: ReversalFunc,
    ) -> tuple[list[TransactionRecord], dict[UUID, Decimal]]:
        ids = list(set(transaction_ids))
        if not ids:
            return [], {}

        async with self._transaction("delete transactions") as session:
            rows = (await session.scalars(
                select(TransactionRow)
                .where(
                    TransactionRow.id.in_(ids),
                    TransactionRow.user_id == user_id,
                )
                .with_for_update()
            )).all()
            if not rows:
                return [], {}

            deleted = [self._transaction_from_row(row) for row in rows]
            deltas = reverse(deleted)

            await session.execute(
                delete(TransactionRow)
                .where(
                    TransactionRow.id.in_([row.id for row in rows]),
                    TransactionRow.user_id == user_id,
                )
                .execution_options(synchronize_session=False)
            )
            for account_id, delta in deltas.items():
                await session.execute(
                    update(AccountRow)
                    .where(
                        AccountRow.id == account_id,
                        AccountRow.user_id == user_id,
                    )
                    .values(
                        balance=AccountRow.balance + delta,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

        return deleted, deltas

    async def replace_account_transactions(
        self,
        user_id: UUID,
        account_id: UUID,
        transactions: list[TransactionRecord],
        balance: Decimal,
    ) -> int:
        async with self._transaction("replace account transactions") as session:
            result = await session.execute(
                update(AccountRow)
                .where(
                    AccountRow.id == account_id,
                    AccountRow.user_id == user_id,
                )
                .values(balance=balance, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AccountNotFoundError()

            await session.execute(
                delete(TransactionRow)
                .where(TransactionRow.account_id == account_id)
                .execution_options(synchronize_session=False)
            )
            session.add_all([self._transaction_to_row(t) for t in transactions])
            await session.flush()

        return len(transactions)

    async def upsert_budget(self, user_id: UUID, amount: Decimal) -> BudgetRecord:
        now = utcnow()
        insert = pg_insert if self._client.connect().dialect.name == "postgresql" else sqlite_insert
        stmt = insert(BudgetRow).values(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            created_at=now,
            updated_at=now,
        )
        # Concurrent first writes collapse onto the one row per user
        stmt = stmt.on_conflict_do_update(
            index_elements=[BudgetRow.user_id],
            set_={"amount": stmt.excluded.amount, "updated_at": now},
        )
        async with self._transaction("update budget") as session:
            await session.execute(stmt)
            row = await session.scalar(
                select(BudgetRow).where(BudgetRow.user_id == user_id)
            )
            return self._budget_from_row(row)


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class SQLAlchemyAuditStorage(AuditStorageInterface):
    """
    SQLAlchemy implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[DatabaseClient] = None):
        self._client = client or DatabaseClient()

    @staticmethod
    def _row_to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            user_id=row.user_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            async with self._client.session_factory.begin() as session:
                session.add(AuditEventRow(
                    event_id=event.event_id,
                    timestamp=event.timestamp,
                    event_type=event.event_type.value,
                    severity=event.severity.value,
                    user_id=event.user_id,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    correlation_id=event.correlation_id,
                    description=event.description,
                    details_json=event.details_json(),
                    error_code=event.error_code,
                    error_message=event.error_message,
                    is_user_action=event.is_user_action,
                ))
            return True
        except SQLAlchemyError as e:
            # Audit logging must not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            async with self._client.session_factory() as session:
                rows = (await session.scalars(
                    select(AuditEventRow)
                    .where(AuditEventRow.correlation_id == correlation_id)
                    .order_by(AuditEventRow.timestamp)
                )).all()
                return [self._row_to_event(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

    async def get_recent_events(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        stmt = select(AuditEventRow).order_by(AuditEventRow.timestamp.desc()).limit(limit)
        if user_id is not None:
            stmt = stmt.where(AuditEventRow.user_id == user_id)
        try:
            async with self._client.session_factory() as session:
                rows = (await session.scalars(stmt)).all()
                return [self._row_to_event(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
