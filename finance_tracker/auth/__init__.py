"""Authorization package."""

from finance_tracker.auth.guard import AuthorizationGuard, UnauthorizedError

__all__ = ["AuthorizationGuard", "UnauthorizedError"]
