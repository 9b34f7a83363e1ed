"""
Receipt Scanner

DESIGN DECISION: Receipt understanding is delegated to Gemini, a black
box that is asked for strict JSON. Everything it returns is treated as
untrusted text:
1. Markdown code fences are stripped
2. The JSON must be an object
3. `amount` must be a finite positive number
4. `category` outside the expense list falls back to "other-expense"

An empty object is the classifier's way of saying "this is not a
receipt". That is a normal outcome (None), not an error.

CRITICAL BOUNDARIES:
- CAN: Propose fields for a transaction form
- CANNOT: Record anything; the user submits the transaction
- CANNOT: Retry; a failed call surfaces as ReceiptServiceError
"""

import json
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

import google.generativeai as genai
from dateutil.parser import isoparse

from finance_tracker.audit.logger import AuditLogger
from finance_tracker.config import get_settings
from finance_tracker.models.ledger import (
    DEFAULT_EXPENSE_CATEGORY,
    EXPENSE_CATEGORIES,
    ReceiptDraft,
)
from finance_tracker.validation.validator import MAX_ABS_AMOUNT


RECEIPT_PROMPT = f"""
Analyze this receipt image and extract the following information in JSON format:
- Total amount (just the number)
- Date (in ISO format)
- Description or items purchased (brief summary)
- Merchant/store name
- Suggested category (one of: {",".join(EXPENSE_CATEGORIES)})

Only respond with valid JSON in this exact format:
{{
  "amount": number,
  "date": "ISO date string",
  "description": "string",
  "merchantName": "string",
  "category": "string"
}}

If it's not a receipt, return an empty object
"""

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


class ReceiptError(Exception):
    """Base exception for receipt scanning."""
    code = "ReceiptError"


class ReceiptParseError(ReceiptError):
    """Classifier output is not the expected JSON shape."""
    code = "ReceiptParseError"


class ReceiptServiceError(ReceiptError):
    """The classifier call itself failed."""
    code = "ReceiptServiceError"


class UnsupportedReceiptError(ReceiptError):
    """The upload is not an image we accept."""
    code = "UnsupportedReceipt"


def _parse_receipt_amount(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ReceiptParseError("Receipt amount is missing")
    try:
        amount = Decimal(repr(value)) if isinstance(value, float) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ReceiptParseError(f"Receipt amount is not a number: {value!r}")
    if not amount.is_finite():
        raise ReceiptParseError("Receipt amount is not finite")
    if amount <= 0:
        raise ReceiptParseError("Receipt amount must be positive")
    if amount >= MAX_ABS_AMOUNT:
        raise ReceiptParseError("Receipt amount is out of range")
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_receipt_response(text: str) -> Optional[ReceiptDraft]:
    """
    Turn raw classifier text into a draft.

    Returns:
        ReceiptDraft, or None when the classifier saw no receipt

    Raises:
        ReceiptParseError: Malformed output
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ReceiptParseError("Invalid response format from Gemini") from e

    if not isinstance(data, dict):
        raise ReceiptParseError("Expected a JSON object from Gemini")

    if not data:
        return None

    amount = _parse_receipt_amount(data.get("amount"))

    receipt_date = None
    raw_date = _optional_text(data.get("date"))
    if raw_date:
        try:
            receipt_date = isoparse(raw_date).date()
        except (ValueError, OverflowError) as e:
            raise ReceiptParseError(f"Receipt date is not ISO formatted: {raw_date}") from e

    category = _optional_text(data.get("category"))
    if category not in EXPENSE_CATEGORIES:
        category = DEFAULT_EXPENSE_CATEGORY

    return ReceiptDraft(
        amount=amount,
        date=receipt_date,
        description=_optional_text(data.get("description")),
        merchant_name=_optional_text(data.get("merchantName")),
        category=category,
    )


class GeminiReceiptScanner:
    """
    Reads receipt images with Gemini.

    Args:
        model: Anything with an async `generate_content_async`.
               Defaults to a configured Gemini model.
        audit_logger: Where scan outcomes are recorded
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._app_settings = get_settings().app
        self._model = model or self._configure_genai()
        self._audit = audit_logger or AuditLogger()

    @staticmethod
    def _configure_genai():
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    def _check_upload(self, image_bytes: bytes, mime_type: str) -> None:
        if (mime_type or "").lower() not in self._app_settings.supported_types_list:
            raise UnsupportedReceiptError(f"Unsupported image type: {mime_type}")
        if not image_bytes:
            raise UnsupportedReceiptError("Receipt image is empty")
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            raise UnsupportedReceiptError(
                f"Receipt image exceeds {self._app_settings.max_upload_size_mb} MB"
            )

    async def scan(
        self,
        image_bytes: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[ReceiptDraft]:
        """
        Propose transaction fields for a receipt image.

        Returns:
            ReceiptDraft, or None if the image is not a receipt

        Raises:
            UnsupportedReceiptError: Bad MIME type, empty or oversized image
            ReceiptServiceError: Gemini call failed
            ReceiptParseError: Gemini answered with malformed JSON
        """
        self._check_upload(image_bytes, mime_type)

        try:
            response = await self._model.generate_content_async([
                {"mime_type": mime_type, "data": image_bytes},
                RECEIPT_PROMPT,
            ])
            text = response.text
        except Exception as e:
            await self._audit.log_external_service_error(
                service="gemini",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise ReceiptServiceError("Failed to scan receipt") from e

        try:
            draft = parse_receipt_response(text)
        except ReceiptParseError as e:
            await self._audit.log_receipt_parse_failed(str(e), correlation_id)
            raise

        await self._audit.log_receipt_scanned(
            mime_type=mime_type,
            size_bytes=len(image_bytes),
            recognized=draft is not None,
            correlation_id=correlation_id,
        )
        return draft
