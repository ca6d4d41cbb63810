"""Notification sinks the execution engine reports state transitions to."""

import logging
from typing import List, Optional, Tuple

from ..models.execution import NotificationLevel
from .logging import get_logger


class Notifier:
    """No-op notifier. Subclasses surface messages to a user."""

    def notify(self, level: NotificationLevel, message: str, details: Optional[str] = None) -> None:
        pass


class LoggingNotifier(Notifier):
    """Routes notifications to the application log."""

    LEVELS = {
        NotificationLevel.INFO: logging.INFO,
        NotificationLevel.SUCCESS: logging.INFO,
        NotificationLevel.WARNING: logging.WARNING,
        NotificationLevel.ERROR: logging.ERROR,
    }

    def __init__(self, logger_name: str = "flowgraph.notifications"):
        self.logger = get_logger(logger_name)

    def notify(self, level: NotificationLevel, message: str, details: Optional[str] = None) -> None:
        text = f"{message}: {details}" if details else message
        self.logger.log(self.LEVELS[level], text)


class RecordingNotifier(Notifier):
    """Keeps every notification in memory; handy for tests and the debug panel."""

    def __init__(self):
        self.messages: List[Tuple[NotificationLevel, str, Optional[str]]] = []

    def notify(self, level: NotificationLevel, message: str, details: Optional[str] = None) -> None:
        self.messages.append((level, message, details))

    def levels(self) -> List[NotificationLevel]:
        return [level for level, _, _ in self.messages]
