"""
Authorization Guard

Maps the identity provider's verified user reference to an internal user.
The identity provider itself is out of process: callers hand over an
already-verified external id.

CRITICAL: The resolved UserRecord is the only source of the user id used
to scope every later query. Nothing downstream reads identity from ambient
state.
"""

from typing import Optional
from uuid import UUID

import structlog

from finance_tracker.audit.logger import AuditLogger
from finance_tracker.models.ledger import UserRecord
from finance_tracker.services.storage.interface import (
    DuplicateError,
    LedgerStorageInterface,
    UserNotFoundError,
)


logger = structlog.get_logger(__name__)


class UnauthorizedError(Exception):
    """No verified identity accompanied the request."""
    code = "Unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class AuthorizationGuard:
    """Resolves callers to internal users."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    @staticmethod
    def _require_identity(external_id: Optional[str]) -> str:
        if external_id is None or not str(external_id).strip():
            raise UnauthorizedError()
        return str(external_id).strip()

    async def resolve_user(
        self,
        external_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> UserRecord:
        """
        Raises:
            UnauthorizedError: No identity supplied
            UserNotFoundError: Identity is not registered
        """
        try:
            external_id = self._require_identity(external_id)
        except UnauthorizedError:
            await self._audit.log_access_denied("Unauthorized", correlation_id)
            raise

        user = await self._storage.get_user_by_external_id(external_id)
        if user is None:
            await self._audit.log_access_denied("UserNotFound", correlation_id)
            raise UserNotFoundError()
        return user

    async def register_user(
        self,
        external_id: Optional[str],
        email: str,
        name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> UserRecord:
        """
        Get-or-create the user on first authenticated access.

        A concurrent registration of the same identity loses on the unique
        constraint and returns the row that won.
        """
        external_id = self._require_identity(external_id)

        existing = await self._storage.get_user_by_external_id(external_id)
        if existing is not None:
            return existing

        user = UserRecord(external_id=external_id, email=email, name=name)
        try:
            created = await self._storage.create_user(user)
        except DuplicateError:
            logger.info("user_registration_raced", external_id=external_id)
            winner = await self._storage.get_user_by_external_id(external_id)
            if winner is None:
                raise
            return winner

        await self._audit.log_user_registered(created.id, external_id, correlation_id)
        return created
