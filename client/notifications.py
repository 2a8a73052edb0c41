"""
Toasts and the in-app inbox.

Toasts are ephemeral: at most `max_toasts` are visible, newest first, and a new
toast beyond the cap silently pushes the oldest one out. A non-persistent toast
schedules its own expiry timer when it is shown; a persistent one stays until it
is dismissed.

The inbox is a separate, unbounded read/unread list that lives for the session
and is never written to storage.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from core.config import SyncSettings

logger = logging.getLogger("notifications")


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEFAULT = "default"


@dataclass(frozen=True)
class NotificationAction:
    """Button attached to a toast or inbox entry."""
    label: str
    on_press: Callable[[], Any]


@dataclass
class Toast:
    type: NotificationType
    title: str
    message: Optional[str] = None
    duration: Optional[float] = None
    persistent: bool = False
    action: Optional[NotificationAction] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)
    _timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"Toast({self.type.value}, {self.title!r}, id={self.id[:8]})"


@dataclass(frozen=True)
class InboxNotification:
    type: NotificationType
    title: str
    message: str
    read: bool = False
    action: Optional[NotificationAction] = None
    data: Optional[dict[str, Any]] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)


class ToastScheduler:
    """
    Capped, newest-first list of toasts with self-expiring entries.

    There is no central timer registry: `hide_toast` only removes a toast from the
    list, while `dismiss_toast` is the toast's own path and also cancels its timer.
    A timer firing for a toast that is already gone does nothing.
    """

    def __init__(self, settings: Optional[SyncSettings] = None):
        self.settings = settings or SyncSettings()
        self._toasts: list[Toast] = []

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)

    def show_toast(
        self,
        type: NotificationType = NotificationType.DEFAULT,
        title: str = "",
        message: Optional[str] = None,
        duration: Optional[float] = None,
        persistent: bool = False,
        action: Optional[NotificationAction] = None,
    ) -> Toast:
        """Show a toast. Must be called from a running event loop."""
        toast = Toast(
            type=NotificationType(type),
            title=title,
            message=message,
            duration=duration,
            persistent=persistent,
            action=action,
        )
        self._toasts = [toast, *self._toasts[: self.settings.max_toasts - 1]]

        if not persistent:
            ttl = duration or self.settings.toast_duration_seconds
            toast._timer = asyncio.get_running_loop().call_later(
                ttl, self._expire, toast.id
            )
        logger.info(f"Showing {toast}")
        return toast

    def _expire(self, toast_id: str) -> None:
        if self.hide_toast(toast_id):
            logger.debug(f"Toast {toast_id[:8]} expired")

    def hide_toast(self, toast_id: str) -> bool:
        """Remove a toast from the list. Returns False if it was not visible."""
        before = len(self._toasts)
        self._toasts = [t for t in self._toasts if t.id != toast_id]
        return len(self._toasts) != before

    def dismiss_toast(self, toast_id: str) -> bool:
        """Dismiss a toast and cancel its own expiry timer."""
        for toast in self._toasts:
            if toast.id == toast_id and toast._timer is not None:
                toast._timer.cancel()
                toast._timer = None
        return self.hide_toast(toast_id)

    def clear_all_toasts(self) -> None:
        self._toasts = []

    def show_success(self, title: str, message: Optional[str] = None) -> Toast:
        return self.show_toast(NotificationType.SUCCESS, title, message)

    def show_error(self, title: str, message: Optional[str] = None) -> Toast:
        return self.show_toast(NotificationType.ERROR, title, message)

    def show_warning(self, title: str, message: Optional[str] = None) -> Toast:
        return self.show_toast(NotificationType.WARNING, title, message)

    def show_info(self, title: str, message: Optional[str] = None) -> Toast:
        return self.show_toast(NotificationType.INFO, title, message)


class Inbox:
    """Session-lived list of in-app notifications, newest first."""

    def __init__(self):
        self._notifications: list[InboxNotification] = []

    @property
    def notifications(self) -> list[InboxNotification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def add_notification(
        self,
        type: NotificationType,
        title: str,
        message: str,
        action: Optional[NotificationAction] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> InboxNotification:
        notification = InboxNotification(
            type=NotificationType(type),
            title=title,
            message=message,
            action=action,
            data=data,
        )
        self._notifications = [notification, *self._notifications]
        logger.info(f"[INBOX] {title}: {message}")
        return notification

    def mark_as_read(self, notification_id: str) -> None:
        self._notifications = [
            replace(n, read=True) if n.id == notification_id else n
            for n in self._notifications
        ]

    def mark_all_as_read(self) -> None:
        self._notifications = [replace(n, read=True) for n in self._notifications]

    def remove_notification(self, notification_id: str) -> None:
        self._notifications = [n for n in self._notifications if n.id != notification_id]

    def clear_all_notifications(self) -> None:
        self._notifications = []


class NotificationCenter:
    """Toasts and inbox together, as the UI consumes them."""

    def __init__(self, settings: Optional[SyncSettings] = None):
        self.toasts = ToastScheduler(settings)
        self.inbox = Inbox()

    @property
    def unread_count(self) -> int:
        return self.inbox.unread_count

    def reset(self) -> None:
        self.toasts.clear_all_toasts()
        self.inbox.clear_all_notifications()
