from __future__ import annotations

import logging
from typing import Protocol

from .errors import NotificationUnsupported
from .events import Notification, ToastBus


class PermissionCapability(Protocol):
    def request(self, user_id: str) -> bool: ...


class NativeNotifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class GrantedPermission:
    def request(self, user_id: str) -> bool:
        return True


class DeniedPermission:
    def request(self, user_id: str) -> bool:
        return False


class UnsupportedPermission:
    def request(self, user_id: str) -> bool:
        raise NotificationUnsupported()


class DirectMessagePermission:
    """Grants native delivery when direct messages are enabled for the bot."""

    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def request(self, user_id: str) -> bool:
        return self.enabled


class NotificationGateway:
    """Routes engine notifications to the in-app toast bus and, when permitted, a native surface."""

    def __init__(
        self,
        toasts: ToastBus,
        native: NativeNotifier | None = None,
        permission: PermissionCapability | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.toasts = toasts
        self.native = native
        self.permission = permission or UnsupportedPermission()
        self.logger = logger or logging.getLogger(__name__)
        self._decisions: dict[str, bool] = {}
        self.prompt_count = 0

    def request_permission(self, user_id: str) -> bool:
        if user_id in self._decisions:
            return self._decisions[user_id]

        self.prompt_count += 1
        try:
            granted = bool(self.permission.request(user_id))
        except NotificationUnsupported as exc:
            self.logger.warning("Native notifications unavailable for user=%s: %s", user_id, exc)
            granted = False

        self._decisions[user_id] = granted
        self.logger.info("Notification permission for user=%s: %s", user_id, "granted" if granted else "denied")
        return granted

    def permission_granted(self, user_id: str) -> bool:
        return self._decisions.get(user_id, False)

    def revoke_permission(self, user_id: str) -> None:
        self._decisions[user_id] = False

    def reset_permission(self, user_id: str) -> None:
        self._decisions.pop(user_id, None)

    def dispatch(self, notification: Notification) -> None:
        try:
            self.toasts.publish(notification)
        except Exception:
            self.logger.exception("In-app dispatch failed for kind=%s", notification.kind.value)

        if self.native is None or not self.permission_granted(notification.user_id):
            return

        try:
            self.native.notify(notification)
        except Exception:
            self.logger.exception(
                "Native dispatch failed for kind=%s user=%s",
                notification.kind.value,
                notification.user_id,
            )
