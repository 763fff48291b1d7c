"""Outbound notification bridge used by the daily unlock service.

The service only knows the `NotificationDispatcher` protocol. Whatever is
behind it (inbox rows, web push, nothing at all) must not affect whether a
tip unlock commits; callers treat every method here as best-effort.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from flask import current_app

from extensions import db
from models import Notification, Tip, to_utc
from notifications import messages
from notifications.push import WebPushSender

Clock = Callable[[], datetime]


class NotificationDispatcher(Protocol):
    def notify_tip_unlocked(self, user_id: int, tip_id: int, position: int) -> None: ...

    def notify_daily_completion(self, user_id: int, level: int) -> None: ...

    def notify_daily_reminder(self, user_id: int) -> None: ...

    def notify_quiz_reminder(self, user_id: int) -> None: ...


class NullDispatcher:
    """Drops everything; used when USE_NOTIFICATIONS is off."""

    def notify_tip_unlocked(self, user_id: int, tip_id: int, position: int) -> None:
        return None

    def notify_daily_completion(self, user_id: int, level: int) -> None:
        return None

    def notify_daily_reminder(self, user_id: int) -> None:
        return None

    def notify_quiz_reminder(self, user_id: int) -> None:
        return None


class InboxPushDispatcher:
    """Writes an inbox Notification, then pushes it to the user's devices."""

    def __init__(
        self,
        push_sender: Optional[WebPushSender] = None,
        ttl_days: int = 7,
        clock: Optional[Clock] = None,
    ) -> None:
        self.push_sender = push_sender
        self.ttl_days = ttl_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def notify_tip_unlocked(self, user_id: int, tip_id: int, position: int) -> None:
        tip = db.session.get(Tip, tip_id)
        if tip is None:
            raise LookupError(f"Tip {tip_id} not found")
        title, message = messages.tip_unlocked_copy(position, tip.title)
        self._deliver(
            user_id,
            title,
            message,
            Notification.TYPE_TIP_UNLOCKED,
            {
                "tip_id": tip_id,
                "unlock_order": position,
                "category_name": tip.category or "General",
            },
        )

    def notify_daily_completion(self, user_id: int, level: int) -> None:
        self._deliver(
            user_id,
            messages.ACHIEVEMENT_TITLE,
            messages.DAILY_COMPLETION_MESSAGE,
            Notification.TYPE_ACHIEVEMENT,
            {"achievement": messages.DAILY_COMPLETION_ACHIEVEMENT, "level": level},
        )

    def notify_daily_reminder(self, user_id: int) -> None:
        self._deliver(
            user_id,
            messages.DAILY_REMINDER_TITLE,
            messages.DAILY_REMINDER_MESSAGE,
            Notification.TYPE_DAILY_REMINDER,
            {},
        )

    def notify_quiz_reminder(self, user_id: int) -> None:
        self._deliver(
            user_id,
            messages.QUIZ_REMINDER_TITLE,
            messages.QUIZ_REMINDER_MESSAGE,
            Notification.TYPE_QUIZ_REMINDER,
            {},
        )

    def _deliver(self, user_id: int, title: str, message: str, notif_type: str, data: dict) -> Notification:
        now = self._clock()
        notification = Notification(
            user_id=user_id,
            title=title[: messages.MAX_TITLE_LENGTH],
            message=message[: messages.MAX_MESSAGE_LENGTH],
            notif_type=notif_type,
            data=data,
            expires_at=to_utc(now + timedelta(days=self.ttl_days)),
        )
        db.session.add(notification)
        db.session.commit()

        if self.push_sender is not None:
            self.push_sender.send(user_id, notification.to_push_payload())

        notification.mark_sent(now)
        db.session.commit()
        current_app.logger.info(
            "Notification %s (%s) sent to user %s", notification.id, notif_type, user_id
        )
        return notification


def delete_expired_notifications(now: Optional[datetime] = None) -> int:
    cutoff = to_utc(now or datetime.now(timezone.utc))
    deleted = (
        db.session.query(Notification)
        .filter(Notification.expires_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
