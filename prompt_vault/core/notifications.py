"""
User-visible outcome notifications.

The core holds no UI state; it emits ``notify(message, severity)`` events
that presentation layers subscribe to.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Severity of a notification."""
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity


Listener = Callable[[Notification], None]


class Notifier:
    """Fan-out of notifications to subscribed listeners.

    The most recent notifications are kept in ``history`` so callers without
    a subscription (the CLI, tests) can inspect what was emitted.
    """

    def __init__(self, history_size: int = 50):
        self._listeners: List[Listener] = []
        self._history_size = history_size
        self.history: List[Notification] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        notification = Notification(message, severity)
        self.history.append(notification)
        del self.history[:-self._history_size]
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")
