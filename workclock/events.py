from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

DEFAULT_TOAST_DURATION_MS = 4000
TOAST_HISTORY_LIMIT = 100


class EventKind(str, Enum):
    CLOCKED_IN = "clocked_in"
    CLOCKED_OUT = "clocked_out"
    BREAK_STARTED = "break_started"
    BREAK_ENDED = "break_ended"
    EYE_CARE_DUE = "eye_care_due"
    EYE_CARE_COMPLETED = "eye_care_completed"
    LONG_SESSION_WARNING = "long_session_warning"
    SESSION_AUTO_CLOSED = "session_auto_closed"
    SETTINGS_CHANGED = "settings_changed"
    COMMAND_REJECTED = "command_rejected"
    PERSISTENCE_WARNING = "persistence_warning"


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class NotificationAction:
    label: str
    on_click: Callable[[], Any]


@dataclass(frozen=True, slots=True)
class Notification:
    kind: EventKind
    user_id: str
    title: str
    body: str
    severity: Severity = Severity.INFO
    persistent: bool = False
    duration_ms: int = DEFAULT_TOAST_DURATION_MS
    action: NotificationAction | None = None
    data: dict[str, Any] = field(default_factory=dict)


ToastListener = Callable[[Notification], None]


class ToastBus:
    """In-app event bus. Keeps a bounded history and fans out to listeners in publish order."""

    def __init__(self, history_limit: int = TOAST_HISTORY_LIMIT, logger: logging.Logger | None = None) -> None:
        self.history: deque[Notification] = deque(maxlen=history_limit)
        self._listeners: list[ToastListener] = []
        self.logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: ToastListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        self.history.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                # A failing listener does not stop delivery to the rest.
                self.logger.exception("Toast listener failed for kind=%s", notification.kind.value)

    def for_user(self, user_id: str) -> list[Notification]:
        return [item for item in self.history if item.user_id == user_id]
