"""
User-visible notices.

The consoles surface transient success/error messages to the operator. The
core pushes them here; whatever renders the UI drains them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."
ACCESS_DENIED_MESSAGE = "Access denied. Insufficient permissions."


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationCenter:
    """Collects notices and fans them out to subscribers."""

    def __init__(self) -> None:
        self._notices: list[Notice] = []
        self._subscribers: list[Callable[[Notice], None]] = []
        self._expiry_announced = False

    def subscribe(self, callback: Callable[[Notice], None]) -> None:
        self._subscribers.append(callback)

    def push(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._notices.append(notice)
        logger.debug("Notice [%s] %s", level.value, message)
        for callback in self._subscribers:
            callback(notice)
        return notice

    def success(self, message: str) -> Notice:
        return self.push(NoticeLevel.SUCCESS, message)

    def info(self, message: str) -> Notice:
        return self.push(NoticeLevel.INFO, message)

    def warning(self, message: str) -> Notice:
        return self.push(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.push(NoticeLevel.ERROR, message)

    def session_expired(self) -> Notice | None:
        """Announce expiry once per authenticated session, however many 401s arrive."""
        if self._expiry_announced:
            return None
        self._expiry_announced = True
        return self.error(SESSION_EXPIRED_MESSAGE)

    def reset_session_expiry(self) -> None:
        self._expiry_announced = False

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def drain(self) -> list[Notice]:
        drained, self._notices = self._notices, []
        return drained

    def messages(self, level: NoticeLevel | None = None) -> list[str]:
        return [n.message for n in self._notices if level is None or n.level == level]
