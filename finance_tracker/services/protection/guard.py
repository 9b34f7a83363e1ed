"""
Rate guard applied before write operations.

CRITICAL: The check runs strictly before any store access. A denied
request leaves no trace in the ledger.
"""

from uuid import UUID

from finance_tracker.services.protection.interface import (
    DenialReason,
    ProtectionDecision,
    ProtectionServiceInterface,
    RateLimitedError,
    RequestBlockedError,
)


class RateGuard:
    """Consumes one quota unit per guarded call and raises on denial."""

    def __init__(self, protection: ProtectionServiceInterface):
        self._protection = protection

    async def consume(self, user_id: UUID) -> ProtectionDecision:
        """
        Raises:
            RateLimitedError: Quota exhausted
            RequestBlockedError: Any other denial
        """
        decision = await self._protection.protect(str(user_id), requested=1)
        if decision.allowed:
            return decision

        if decision.reason == DenialReason.RATE_LIMIT:
            raise RateLimitedError(decision.remaining, decision.reset_in_seconds)

        raise RequestBlockedError(decision.reason.value if decision.reason else "UNKNOWN")
