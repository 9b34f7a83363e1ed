"""
View invalidation signals.

After a committed mutation the engine tells the presentation layer which
views are stale: always the dashboard, plus the page of every touched
account. The presentation layer is out of process, so the shipped
implementation logs the paths and keeps a bounded history of them; a web
host plugs in its own.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable
from uuid import UUID

import structlog


DASHBOARD_PATH = "/dashboard"


def account_path(account_id: UUID) -> str:
    return f"/account/{account_id}"


class ViewInvalidator(ABC):
    """Receives stale-view signals."""

    @abstractmethod
    def invalidate(self, path: str) -> None:
        pass

    def invalidate_accounts(self, account_ids: Iterable[UUID]) -> None:
        """Dashboard plus one path per account."""
        self.invalidate(DASHBOARD_PATH)
        for account_id in account_ids:
            self.invalidate(account_path(account_id))


class LoggingViewInvalidator(ViewInvalidator):
    """Logs every signal and keeps the latest `history` of them in `recent` (in order)."""

    def __init__(self, history: int = 100):
        self.recent: deque[str] = deque(maxlen=history)
        self._logger = structlog.get_logger(__name__)

    def invalidate(self, path: str) -> None:
        self.recent.append(path)
        self._logger.info("view_invalidated", path=path)
