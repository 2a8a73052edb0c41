"""
Client-side state: the optimistic store, the persistent cart, toasts and inbox,
and the container that ties them to a session.
"""

from client.cart import CartCache, WritePolicy
from client.notifications import (
    Inbox,
    InboxNotification,
    NotificationAction,
    NotificationCenter,
    NotificationType,
    Toast,
    ToastScheduler,
)
from client.session import ClientState
from client.store import PersistedUserState, UserState, UserStore

__all__ = [
    "CartCache",
    "WritePolicy",
    "Inbox",
    "InboxNotification",
    "NotificationAction",
    "NotificationCenter",
    "NotificationType",
    "Toast",
    "ToastScheduler",
    "ClientState",
    "PersistedUserState",
    "UserState",
    "UserStore",
]
