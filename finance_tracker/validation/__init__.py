"""Validation package."""

from finance_tracker.validation.validator import (
    FieldIssue,
    InvalidAmountError,
    InvalidDraftError,
    coerce_uuid,
    parse_amount,
    validate_account_draft,
    validate_transaction_draft,
)

__all__ = [
    "FieldIssue",
    "InvalidAmountError",
    "InvalidDraftError",
    "coerce_uuid",
    "parse_amount",
    "validate_account_draft",
    "validate_transaction_draft",
]
