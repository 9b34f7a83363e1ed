"""
Abuse Protection Interface

DESIGN DECISION: The quota is tracked by a protection service behind an
abstract interface. The shipped implementation is an in-process token
bucket; a hosted protection service can replace it without touching the
ledger engine.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DenialReason(str, Enum):
    """Why a protection check refused a request."""
    RATE_LIMIT = "RATE_LIMIT"
    BLOCKED = "BLOCKED"
    OVER_CAPACITY = "OVER_CAPACITY"


class ProtectionDecision(BaseModel):
    """Outcome of one protection check."""

    allowed: bool
    reason: Optional[DenialReason] = None
    remaining: int = Field(default=0, ge=0)
    reset_in_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def is_rate_limited(self) -> bool:
        return not self.allowed and self.reason == DenialReason.RATE_LIMIT


class ProtectionServiceInterface(ABC):
    """Abstract interface for quota / abuse checks."""

    @abstractmethod
    async def protect(self, key: str, requested: int = 1) -> ProtectionDecision:
        """
        Try to consume `requested` units of the caller's quota.

        Args:
            key: Stable identifier of the caller (internal user id)
            requested: Units to consume

        Returns:
            ProtectionDecision. Units are consumed only when allowed.
        """
        pass


class ProtectionError(Exception):
    """Base exception for denied requests."""
    code = "ProtectionError"

    @property
    def details(self) -> dict:
        return {}


class RateLimitedError(ProtectionError):
    """Quota exhausted. Carries a hint for client backoff."""
    code = "RateLimited"

    def __init__(self, remaining: int, reset_in_seconds: float):
        self.remaining = remaining
        self.reset_in_seconds = reset_in_seconds
        super().__init__("Too many requests. Please try again later.")

    @property
    def details(self) -> dict:
        return {
            "remaining": self.remaining,
            "reset_in_seconds": self.reset_in_seconds,
        }


class RequestBlockedError(ProtectionError):
    """Request denied for a reason other than the quota."""
    code = "RequestBlocked"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__("Request blocked")

    @property
    def details(self) -> dict:
        return {"reason": self.reason}
