"""Notification service for transient success/failure messages shown to a user.

Notifications are fire-and-forget: ``notify`` never blocks and returns nothing.
Each user has one center that remembers the most recent messages and hands new
ones to every live listener (for example an open event stream).
"""

import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel, Field

from src.core.config import Constants


logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    """Visual tone of a notification."""

    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """A transient message for the user."""

    level: NotificationLevel = Field(..., description="success or error")
    message: str = Field(..., description="Headline shown to the user")
    detail: str | None = Field(default=None, description="Optional explanation")
    duration_ms: int = Field(
        default=Constants.NOTIFICATION_DEFAULT_DURATION_MS, description="How long the message stays visible"
    )
    created_at: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        description="When the notification was raised (ISO format)",
    )


class Notifier(Protocol):
    """Anything that can surface a notification to the user."""

    def notify(
        self,
        level: NotificationLevel,
        message: str,
        *,
        detail: str | None = None,
        duration_ms: int | None = None,
    ) -> None: ...


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """Per-user notification history and live fan-out."""

    def __init__(self, user_id: str, *, history: int = Constants.NOTIFICATION_HISTORY) -> None:
        self.user_id = user_id
        self._recent: deque[Notification] = deque(maxlen=history)
        self._listeners: list[NotificationListener] = []

    def notify(
        self,
        level: NotificationLevel,
        message: str,
        *,
        detail: str | None = None,
        duration_ms: int | None = None,
    ) -> None:
        """Record a notification and push it to live listeners."""
        notification = Notification(
            level=level,
            message=message,
            detail=detail,
            duration_ms=duration_ms or Constants.NOTIFICATION_DEFAULT_DURATION_MS,
        )
        self._recent.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("notification_listener_failed", extra={"user_id": self.user_id})
        logger.info(
            "notification_raised",
            extra={"user_id": self.user_id, "level": level, "listeners": len(self._listeners)},
        )

    def success(self, message: str, *, duration_ms: int | None = None) -> None:
        self.notify(NotificationLevel.SUCCESS, message, duration_ms=duration_ms)

    def error(self, message: str, *, detail: str | None = None) -> None:
        self.notify(NotificationLevel.ERROR, message, detail=detail)

    def recent(self) -> list[Notification]:
        """Most recent notifications, oldest first."""
        return list(self._recent)

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """Call ``listener(notification)`` for every new notification; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove


_centers: dict[str, NotificationCenter] = {}


def get_center(user_id: str) -> NotificationCenter:
    """Get (or create) the notification center of a user."""
    center = _centers.get(user_id)
    if center is None:
        center = NotificationCenter(user_id)
        _centers[user_id] = center
    return center
