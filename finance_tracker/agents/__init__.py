"""AI Agents package."""

from finance_tracker.agents.receipt_scanner import (
    RECEIPT_PROMPT,
    GeminiReceiptScanner,
    ReceiptError,
    ReceiptParseError,
    ReceiptServiceError,
    UnsupportedReceiptError,
    parse_receipt_response,
)

__all__ = [
    "RECEIPT_PROMPT",
    "GeminiReceiptScanner",
    "ReceiptError",
    "ReceiptParseError",
    "ReceiptServiceError",
    "UnsupportedReceiptError",
    "parse_receipt_response",
]
