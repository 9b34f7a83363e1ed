"""
Tests for the orchestrator flows.

These go through create_app_components the way a host would: external
identity in, ActionResult envelopes and plain dicts out.
"""

import datetime as dt
import json
from uuid import uuid4

import pytest
import pytest_asyncio

from finance_tracker.agents import GeminiReceiptScanner, UnsupportedReceiptError
from finance_tracker.auth import UnauthorizedError
from finance_tracker.models.audit import AuditEventType
from finance_tracker.orchestrator import STORE_FAILURE_MESSAGE, create_app_components
from finance_tracker.services.storage import (
    AccountNotFoundError,
    SQLAlchemyAuditStorage,
    StorageError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from tests.conftest import FakeGeminiModel


ALICE = "user_alice"
BOB = "user_bob"


@pytest_asyncio.fixture
async def app(protection):
    scanner_model = FakeGeminiModel(json.dumps({
        "amount": 18.75,
        "date": "2024-05-02",
        "description": "Lunch",
        "merchantName": "Cafe",
        "category": "food",
    }))
    components = create_app_components(
        database_url="sqlite+aiosqlite:///:memory:",
        scanner=GeminiReceiptScanner(model=scanner_model),
        protection=protection,
    )
    await components.init()
    await components.guard.register_user(ALICE, "alice@example.com", "Alice")
    await components.guard.register_user(BOB, "bob@example.com", "Bob")
    yield components
    await components.close()


async def open_account(app, external_id=ALICE, **payload):
    payload.setdefault("name", "Checking")
    result = await app.account_flow.create_account(external_id, payload)
    assert result.success, result.error
    return result.data


class TestAccountFlow:
    """Tests for account operations."""

    async def test_create_account_round_trips_amount(self, app):
        """100.50 in, 100.5 out."""
        data = await open_account(app, balance="100.50")

        assert data["balance"] == 100.5
        assert data["is_default"] is True
        assert data["currency"] == "USD"

    async def test_create_account_accepts_numeric_balance(self, app):
        data = await open_account(app, balance=12.25)
        assert data["balance"] == 12.25

    async def test_create_account_accepts_camel_case(self, app):
        first = await open_account(app, name="First")
        second = await open_account(app, name="Second", isDefault=True)

        accounts = {a["id"]: a for a in await app.account_flow.get_user_accounts(ALICE)}
        assert accounts[second["id"]]["is_default"] is True
        assert accounts[first["id"]]["is_default"] is False

    async def test_invalid_balance_envelope(self, app):
        result = await app.account_flow.create_account(ALICE, {"name": "Bad", "balance": "ten"})

        assert result.success is False
        assert result.error_code == "InvalidAmount"
        assert result.details["field"] == "balance"

    async def test_invalid_draft_envelope(self, app):
        result = await app.account_flow.create_account(ALICE, {"name": "", "balance": "1"})

        assert result.success is False
        assert result.error_code == "InvalidInput"

    async def test_unauthenticated_envelope(self, app):
        result = await app.account_flow.create_account(None, {"name": "Nope"})

        assert result.success is False
        assert result.error_code == "Unauthorized"
        assert result.error == "Unauthorized"

    async def test_unknown_user_envelope(self, app):
        result = await app.account_flow.create_account("user_ghost", {"name": "Nope"})

        assert result.success is False
        assert result.error_code == "UserNotFound"
        assert result.error == "User not found"

    async def test_get_user_accounts_newest_first_with_counts(self, app):
        older = await open_account(app, name="Older")
        newer = await open_account(app, name="Newer")
        await app.transaction_flow.create_transaction(ALICE, {
            "accountId": older["id"],
            "type": "EXPENSE",
            "amount": "5",
            "date": "2024-01-02",
            "category": "food",
        })

        accounts = await app.account_flow.get_user_accounts(ALICE)

        assert [a["id"] for a in accounts] == [newer["id"], older["id"]]
        assert [a["transaction_count"] for a in accounts] == [0, 1]
        assert isinstance(accounts[1]["balance"], float)

    async def test_get_user_accounts_only_own(self, app):
        await open_account(app, BOB, name="Bob's")
        assert await app.account_flow.get_user_accounts(ALICE) == []

    async def test_get_user_accounts_requires_identity(self, app):
        with pytest.raises(UnauthorizedError):
            await app.account_flow.get_user_accounts("")

    async def test_update_default_account(self, app):
        first = await open_account(app, name="First")
        second = await open_account(app, name="Second")

        result = await app.account_flow.update_default_account(ALICE, second["id"])

        assert result.success
        assert result.data["id"] == second["id"]
        assert result.data["is_default"] is True
        defaults = [a["id"] for a in await app.account_flow.get_user_accounts(ALICE) if a["is_default"]]
        assert defaults == [second["id"]]
        assert first["id"] not in defaults

    async def test_update_default_foreign_account(self, app):
        theirs = await open_account(app, BOB, name="Bob's")

        result = await app.account_flow.update_default_account(ALICE, theirs["id"])

        assert result.success is False
        assert result.error_code == "AccountNotFound"

    async def test_update_default_malformed_id(self, app):
        result = await app.account_flow.update_default_account(ALICE, "not-a-uuid")
        assert result.error_code == "AccountNotFound"

    async def test_account_with_transactions(self, app):
        account = await open_account(app, balance="100")
        for day, amount in (("2024-01-01", "10"), ("2024-02-01", "20.5")):
            await app.transaction_flow.create_transaction(ALICE, {
                "account_id": account["id"],
                "type": "EXPENSE",
                "amount": amount,
                "date": day,
                "category": "food",
            })

        view = await app.account_flow.get_account_with_transactions(ALICE, account["id"])

        assert view["balance"] == 69.5
        assert view["transaction_count"] == 2
        assert [t["date"] for t in view["transactions"]] == ["2024-02-01", "2024-01-01"]
        assert view["transactions"][0]["amount"] == 20.5

    async def test_account_with_transactions_not_owned(self, app):
        theirs = await open_account(app, BOB, name="Bob's")

        with pytest.raises(AccountNotFoundError):
            await app.account_flow.get_account_with_transactions(ALICE, theirs["id"])

        with pytest.raises(AccountNotFoundError):
            await app.account_flow.get_account_with_transactions(ALICE, "garbage")


class TestTransactionFlow:
    """Tests for transaction operations."""

    async def test_create_transaction(self, app):
        account = await open_account(app, balance="100.00")

        result = await app.transaction_flow.create_transaction(ALICE, {
            "accountId": account["id"],
            "type": "EXPENSE",
            "amount": 50,
            "date": "2024-01-31",
            "category": "housing",
            "isRecurring": True,
            "recurringInterval": "MONTHLY",
        })

        assert result.success, result.error
        assert result.data["amount"] == 50.0
        assert result.data["next_recurring_date"] == "2024-02-29"
        view = await app.account_flow.get_account_with_transactions(ALICE, account["id"])
        assert view["balance"] == 50.0

    @pytest.mark.parametrize("amount", [None, "", "abc", "0", "-1", "1.001", "NaN"])
    async def test_invalid_amount_writes_nothing(self, app, amount):
        account = await open_account(app, balance="100.00")
        payload = {
            "account_id": account["id"],
            "type": "EXPENSE",
            "date": "2024-01-01",
            "category": "food",
        }
        if amount is not None:
            payload["amount"] = amount

        result = await app.transaction_flow.create_transaction(ALICE, payload)

        assert result.success is False
        assert result.error_code == "InvalidAmount"
        view = await app.account_flow.get_account_with_transactions(ALICE, account["id"])
        assert view["transaction_count"] == 0
        assert view["balance"] == 100.0

    async def test_missing_fields_envelope(self, app):
        account = await open_account(app)

        result = await app.transaction_flow.create_transaction(ALICE, {
            "account_id": account["id"],
            "amount": "5",
        })

        assert result.error_code == "InvalidInput"
        fields = {issue["field"] for issue in result.details["issues"]}
        assert {"type", "date", "category"} <= fields

    async def test_foreign_account_envelope(self, app):
        theirs = await open_account(app, BOB, name="Bob's", balance="10")

        result = await app.transaction_flow.create_transaction(ALICE, {
            "account_id": theirs["id"],
            "type": "EXPENSE",
            "amount": "5",
            "date": "2024-01-01",
            "category": "food",
        })

        assert result.error_code == "AccountNotFound"
        view = await app.account_flow.get_account_with_transactions(BOB, theirs["id"])
        assert view["balance"] == 10.0

    async def test_rate_limited_envelope(self, app):
        account = await open_account(app)
        payload = {
            "account_id": account["id"],
            "type": "INCOME",
            "amount": "1",
            "date": "2024-01-01",
            "category": "salary",
        }
        for _ in range(10):
            assert (await app.transaction_flow.create_transaction(ALICE, payload)).success

        result = await app.transaction_flow.create_transaction(ALICE, payload)

        assert result.success is False
        assert result.error_code == "RateLimited"
        assert result.error == "Too many requests. Please try again later."
        assert result.details["remaining"] == 0
        assert result.details["reset_in_seconds"] > 0

    async def test_bulk_delete(self, app):
        account = await open_account(app, balance="100")
        ids = []
        for amount in ("10", "15"):
            result = await app.transaction_flow.create_transaction(ALICE, {
                "account_id": account["id"],
                "type": "EXPENSE",
                "amount": amount,
                "date": "2024-01-01",
                "category": "food",
            })
            ids.append(result.data["id"])

        result = await app.transaction_flow.bulk_delete_transactions(
            ALICE, ids + ["not-a-uuid", str(uuid4())]
        )

        assert result.success
        assert result.data == {"deleted": 2}
        view = await app.account_flow.get_account_with_transactions(ALICE, account["id"])
        assert view["balance"] == 100.0
        assert view["transaction_count"] == 0

    async def test_bulk_delete_foreign_ids_ignored(self, app):
        theirs = await open_account(app, BOB, name="Bob's", balance="0")
        created = await app.transaction_flow.create_transaction(BOB, {
            "account_id": theirs["id"],
            "type": "INCOME",
            "amount": "40",
            "date": "2024-01-01",
            "category": "salary",
        })

        result = await app.transaction_flow.bulk_delete_transactions(ALICE, [created.data["id"]])

        assert result.data == {"deleted": 0}
        fetched = await app.transaction_flow.get_transaction(BOB, created.data["id"])
        assert fetched["amount"] == 40.0

    async def test_get_transaction_not_owned(self, app):
        theirs = await open_account(app, BOB, name="Bob's")
        created = await app.transaction_flow.create_transaction(BOB, {
            "account_id": theirs["id"],
            "type": "EXPENSE",
            "amount": "1",
            "date": "2024-01-01",
            "category": "food",
        })

        with pytest.raises(TransactionNotFoundError):
            await app.transaction_flow.get_transaction(ALICE, created.data["id"])

    async def test_get_transaction_unknown_user(self, app):
        with pytest.raises(UserNotFoundError):
            await app.transaction_flow.get_transaction("user_ghost", str(uuid4()))

    async def test_scan_receipt(self, app):
        data = await app.transaction_flow.scan_receipt(b"\xff\xd8", "image/jpeg")

        assert data == {
            "amount": 18.75,
            "date": "2024-05-02",
            "description": "Lunch",
            "merchant_name": "Cafe",
            "category": "food",
        }

    async def test_scan_receipt_records_nothing(self, app):
        account = await open_account(app)
        await app.transaction_flow.scan_receipt(b"\xff\xd8", "image/jpeg")

        view = await app.account_flow.get_account_with_transactions(ALICE, account["id"])
        assert view["transaction_count"] == 0

    async def test_scan_receipt_unsupported(self, app):
        with pytest.raises(UnsupportedReceiptError):
            await app.transaction_flow.scan_receipt(b"GIF89a", "image/gif")


class TestBudgetFlow:
    """Tests for budget operations."""

    async def test_no_budget(self, app):
        account = await open_account(app)

        status = await app.budget_flow.get_current_budget(ALICE, account["id"])

        assert status == {"budget": None, "current_expenses": 0.0}

    async def test_update_then_read(self, app):
        account = await open_account(app)
        await app.transaction_flow.create_transaction(ALICE, {
            "account_id": account["id"],
            "type": "EXPENSE",
            "amount": "12.40",
            "date": dt.date.today().isoformat(),
            "category": "food",
        })

        result = await app.budget_flow.update_budget(ALICE, "400.00")
        status = await app.budget_flow.get_current_budget(ALICE, account["id"])

        assert result.success
        assert result.data["amount"] == 400.0
        assert status["budget"]["amount"] == 400.0
        assert status["current_expenses"] == 12.4

    async def test_update_invalid(self, app):
        result = await app.budget_flow.update_budget(ALICE, "-3")

        assert result.success is False
        assert result.error_code == "InvalidAmount"

    async def test_malformed_account_id(self, app):
        with pytest.raises(AccountNotFoundError):
            await app.budget_flow.get_current_budget(ALICE, "nope")


class TestStoreFailures:
    """Store errors surface as a generic envelope."""

    async def test_generic_message(self, app, monkeypatch):
        async def failing_upsert(user_id, amount):
            raise StorageError("disk I/O error at /var/db/finance.db")

        monkeypatch.setattr(app.storage, "upsert_budget", failing_upsert)

        result = await app.budget_flow.update_budget(ALICE, "10")

        assert result.success is False
        assert result.error_code == "StoreError"
        assert result.error == STORE_FAILURE_MESSAGE
        assert "disk" not in result.error

    async def test_failure_is_audited(self, app, monkeypatch):
        async def failing_upsert(user_id, amount):
            raise StorageError("boom")

        monkeypatch.setattr(app.storage, "upsert_budget", failing_upsert)

        await app.budget_flow.update_budget(ALICE, "10")

        events = await SQLAlchemyAuditStorage(app.client).get_recent_events(limit=1)
        assert events[0].event_type == AuditEventType.OPERATION_FAILED
        assert events[0].error_code == "StoreError"
