"""
Boundary serialization.

The only place Decimals become floats. Everything the flows hand to the
presentation layer passes through here: plain dicts, snake_case keys,
ISO dates, string ids.
"""

from decimal import Decimal
from typing import Optional

from finance_tracker.models.ledger import (
    AccountRecord,
    AccountWithTransactions,
    BudgetRecord,
    BudgetStatus,
    ReceiptDraft,
    TransactionRecord,
)


def to_number(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_account(account: AccountRecord) -> dict:
    data = account.model_dump(mode="json", exclude={"balance", "transaction_count"})
    data["balance"] = to_number(account.balance)
    if account.transaction_count is not None:
        data["transaction_count"] = account.transaction_count
    return data


def serialize_transaction(transaction: TransactionRecord) -> dict:
    data = transaction.model_dump(mode="json", exclude={"amount"})
    data["amount"] = to_number(transaction.amount)
    return data


def serialize_account_with_transactions(view: AccountWithTransactions) -> dict:
    data = serialize_account(view.account)
    data["transactions"] = [serialize_transaction(t) for t in view.transactions]
    data["transaction_count"] = view.transaction_count
    return data


def serialize_budget(budget: Optional[BudgetRecord]) -> Optional[dict]:
    if budget is None:
        return None
    data = budget.model_dump(mode="json", exclude={"amount"})
    data["amount"] = to_number(budget.amount)
    return data


def serialize_budget_status(status: BudgetStatus) -> dict:
    return {
        "budget": serialize_budget(status.budget),
        "current_expenses": to_number(status.current_expenses),
    }


def serialize_receipt(draft: Optional[ReceiptDraft]) -> dict:
    """Empty dict when the image was not a receipt."""
    if draft is None:
        return {}
    data = draft.model_dump(mode="json", exclude={"amount"})
    data["amount"] = to_number(draft.amount)
    return data
