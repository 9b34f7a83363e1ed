"""
Input Validation

DESIGN DECISION: Every value crossing into the core is validated before
any store access:

STAGE 1 - AMOUNT PARSING:
- Monetary input arrives as strings or numbers
- It is parsed into an exact two-place Decimal
- Malformed, non-finite or over-precise values are rejected, never rounded

STAGE 2 - DRAFT VALIDATION:
- The remaining fields are checked by the pydantic draft models
- All problems are reported together

IMPORTANT: Validation NEVER silently fixes issues. An amount with a third
decimal place is an error, not something to round away.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ValidationError

from finance_tracker.models.ledger import AccountDraft, TransactionDraft


CENT = Decimal("0.01")

# Twelve integer digits; stored as integer cents
MAX_ABS_AMOUNT = Decimal("1000000000000")


class FieldIssue(BaseModel):
    """A single validation problem."""
    field: str
    message: str


class InvalidAmountError(ValueError):
    """Monetary input is not a well-formed amount."""
    code = "InvalidAmount"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")

    @property
    def details(self) -> dict:
        return {"field": self.field, "reason": self.reason}


class InvalidDraftError(ValueError):
    """A draft failed schema validation."""
    code = "InvalidInput"

    def __init__(self, issues: list[FieldIssue]):
        self.issues = issues
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(f"Invalid input: {summary}")

    @property
    def details(self) -> dict:
        return {"issues": [issue.model_dump() for issue in self.issues]}

    @classmethod
    def from_validation_error(cls, error: ValidationError) -> "InvalidDraftError":
        return cls([
            FieldIssue(
                field=".".join(str(part) for part in err["loc"]) or "payload",
                message=err["msg"],
            )
            for err in error.errors()
        ])


def parse_amount(
    value: Any,
    field: str = "amount",
    allow_negative: bool = False,
    allow_zero: bool = False,
) -> Decimal:
    """
    Parse monetary input into a two-place Decimal.

    Floats are read through their shortest repr, so 100.5 becomes
    Decimal("100.50") rather than its binary expansion.

    Raises:
        InvalidAmountError: On anything that is not an exact amount
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(field, "a number is required")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidAmountError(field, "a number is required")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(field, f"'{value}' is not a number")
    else:
        raise InvalidAmountError(field, f"unsupported type {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidAmountError(field, "must be a finite number")

    if abs(amount) >= MAX_ABS_AMOUNT:
        raise InvalidAmountError(field, "is out of range")

    if amount != amount.quantize(CENT):
        raise InvalidAmountError(field, "must have at most two decimal places")

    if amount < 0 and not allow_negative:
        raise InvalidAmountError(field, "must not be negative")

    if amount == 0 and not allow_zero:
        raise InvalidAmountError(field, "must be greater than zero")

    return amount.quantize(CENT)


def coerce_uuid(value: Any) -> Optional[UUID]:
    """UUID from a UUID or its string form, None when it cannot be one."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None


def validate_account_draft(payload: Mapping[str, Any] | AccountDraft) -> AccountDraft:
    """
    Build an AccountDraft from presentation input.

    The opening balance stays a string here; the engine parses it.
    """
    if isinstance(payload, AccountDraft):
        return payload

    data = dict(payload)
    balance = data.get("balance")
    if balance is not None and not isinstance(balance, (str, bool)):
        data["balance"] = str(balance)

    try:
        return AccountDraft.model_validate(data)
    except ValidationError as e:
        raise InvalidDraftError.from_validation_error(e) from e


def validate_transaction_draft(
    payload: Mapping[str, Any] | TransactionDraft,
) -> TransactionDraft:
    """
    Build a TransactionDraft from presentation input.

    Raises:
        InvalidAmountError: Missing or malformed amount
        InvalidDraftError: Any other schema problem
    """
    if isinstance(payload, TransactionDraft):
        return payload

    data = dict(payload)
    data["amount"] = parse_amount(data.get("amount"))

    try:
        return TransactionDraft.model_validate(data)
    except ValidationError as e:
        raise InvalidDraftError.from_validation_error(e) from e
