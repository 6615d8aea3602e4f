"""User-visible notifications (toast-style)"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A lightweight message for the UI layer"""
    level: NotificationLevel
    title: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_LOG_LEVELS = {
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


class Notifier:
    """Sink for user-visible notifications"""

    def notify(self, notification: Notification) -> None:
        raise NotImplementedError

    def success(self, title: str, message: str) -> None:
        self.notify(Notification(NotificationLevel.SUCCESS, title, message))

    def info(self, title: str, message: str) -> None:
        self.notify(Notification(NotificationLevel.INFO, title, message))

    def warning(self, title: str, message: str) -> None:
        self.notify(Notification(NotificationLevel.WARNING, title, message))

    def error(self, title: str, message: str) -> None:
        self.notify(Notification(NotificationLevel.ERROR, title, message))


class LoggingNotifier(Notifier):
    """Writes notifications to the log; the default when no UI is attached"""

    def notify(self, notification: Notification) -> None:
        logger.log(
            _LOG_LEVELS[notification.level],
            f"[{notification.level.value}] {notification.title}: {notification.message}",
        )


class CollectingNotifier(Notifier):
    """Keeps notifications in memory for a UI adapter to drain"""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def drain(self) -> list[Notification]:
        drained, self.notifications = self.notifications, []
        return drained

    def levels(self) -> list[NotificationLevel]:
        return [n.level for n in self.notifications]
