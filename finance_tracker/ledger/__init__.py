"""Ledger package: balance rules and the consistency engine."""

from finance_tracker.ledger.engine import BalanceEngine
from finance_tracker.ledger.rules import (
    ledger_total,
    next_recurring_date,
    reversal_deltas,
    signed_amount,
)

__all__ = [
    "BalanceEngine",
    "ledger_total",
    "next_recurring_date",
    "reversal_deltas",
    "signed_amount",
]
