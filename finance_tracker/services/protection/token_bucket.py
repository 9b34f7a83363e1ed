"""
In-process token bucket.

Each key owns a bucket of `capacity` tokens that refills continuously at
`refill_rate` tokens per `interval_seconds`. State lives in memory, so the
quota is per process.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from finance_tracker.config import get_settings
from finance_tracker.services.protection.interface import (
    DenialReason,
    ProtectionDecision,
    ProtectionServiceInterface,
)


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class TokenBucketProtection(ProtectionServiceInterface):
    """
    Token bucket keyed by caller.

    Args:
        capacity: Maximum tokens per bucket
        refill_rate: Tokens added per interval
        interval_seconds: Length of the refill interval
        clock: Monotonic clock in seconds, injectable for tests
        blocked_keys: Keys that are always denied
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        refill_rate: Optional[int] = None,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        blocked_keys: Iterable[str] = (),
    ):
        settings = get_settings().rate_limit
        self.capacity = capacity if capacity is not None else settings.capacity
        self.refill_rate = refill_rate if refill_rate is not None else settings.refill_rate
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.interval_seconds
        )
        if self.capacity < 1 or self.refill_rate < 1 or self.interval_seconds <= 0:
            raise ValueError("Token bucket needs a positive capacity, refill rate and interval")

        self._clock = clock
        self._blocked = set(blocked_keys)
        self._buckets: dict[str, _Bucket] = {}
        self._lock = asyncio.Lock()

    @property
    def tokens_per_second(self) -> float:
        return self.refill_rate / self.interval_seconds

    def _refill(self, key: str, now: float) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.capacity), updated_at=now)
            self._buckets[key] = bucket
            return bucket

        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(float(self.capacity), bucket.tokens + elapsed * self.tokens_per_second)
        bucket.updated_at = now
        return bucket

    async def protect(self, key: str, requested: int = 1) -> ProtectionDecision:
        if requested < 1:
            raise ValueError("requested must be at least 1")

        if key in self._blocked:
            return ProtectionDecision(allowed=False, reason=DenialReason.BLOCKED)

        if requested > self.capacity:
            return ProtectionDecision(allowed=False, reason=DenialReason.OVER_CAPACITY)

        async with self._lock:
            bucket = self._refill(key, self._clock())

            if bucket.tokens >= requested:
                bucket.tokens -= requested
                return ProtectionDecision(
                    allowed=True,
                    remaining=int(bucket.tokens),
                )

            missing = requested - bucket.tokens
            return ProtectionDecision(
                allowed=False,
                reason=DenialReason.RATE_LIMIT,
                remaining=int(bucket.tokens),
                reset_in_seconds=round(missing / self.tokens_per_second, 3),
            )
