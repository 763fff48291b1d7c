"""Notification bridge: inbox records plus web push delivery."""

from .dispatch import (
    InboxPushDispatcher,
    NotificationDispatcher,
    NullDispatcher,
    delete_expired_notifications,
)
from .push import WebPushSender

__all__ = [
    "InboxPushDispatcher",
    "NotificationDispatcher",
    "NullDispatcher",
    "WebPushSender",
    "delete_expired_notifications",
]
