"""Abuse protection: quota interface, token bucket and the write guard."""

from finance_tracker.services.protection.interface import (
    DenialReason,
    ProtectionDecision,
    ProtectionError,
    ProtectionServiceInterface,
    RateLimitedError,
    RequestBlockedError,
)
from finance_tracker.services.protection.token_bucket import TokenBucketProtection
from finance_tracker.services.protection.guard import RateGuard

__all__ = [
    "DenialReason",
    "ProtectionDecision",
    "ProtectionError",
    "ProtectionServiceInterface",
    "RateGuard",
    "RateLimitedError",
    "RequestBlockedError",
    "TokenBucketProtection",
]
