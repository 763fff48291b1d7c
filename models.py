"""Database models shared across the SpeakCraft Flask app."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, func
from sqlalchemy.ext.hybrid import hybrid_property

from extensions import db

USER_LEVEL_MIN = 1


class User(db.Model):
    """Learner account; only the fields the unlock scheduler reads live here."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    display_name = db.Column(db.String(120), nullable=True)
    level = db.Column(db.Integer, nullable=False, default=USER_LEVEL_MIN)
    quiz_completed = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    @hybrid_property
    def is_eligible_for_tips(self) -> bool:
        return bool(self.is_active and self.quiz_completed)

    @is_eligible_for_tips.expression
    def is_eligible_for_tips(cls):
        return and_(cls.is_active.is_(True), cls.quiz_completed.is_(True))

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<User id={self.id} email={self.email!r} level={self.level}>"


class Tip(db.Model):
    """A language tip served through the daily drip feed."""

    __tablename__ = "tips"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(80), nullable=True)
    tip_type = db.Column(db.String(20), nullable=False, default="general")
    level = db.Column(db.Integer, index=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        db.Index("ix_tips_level_active", "level", "is_active"),
    )

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category or "General",
            "type": self.tip_type,
            "level": self.level,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Tip id={self.id} level={self.level} title={self.title!r}>"


class UserTipInteraction(db.Model):
    """Per (user, tip) marker: unlock history plus read/favorite flags."""

    __tablename__ = "user_tip_interactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    tip_id = db.Column(db.Integer, db.ForeignKey("tips.id"), nullable=False)

    is_unlocked = db.Column(db.Boolean, default=False, nullable=False)
    unlocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    unlock_order = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_favorite = db.Column(db.Boolean, default=False, nullable=False)
    favorited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "tip_id", name="uq_interaction_user_tip"),
        db.Index("ix_interaction_user_unlocked", "user_id", "is_unlocked"),
    )


class PushSubscription(db.Model):
    """Web push endpoint registered by one of the user's devices."""

    __tablename__ = "push_subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    endpoint = db.Column(db.String(1000), unique=True, nullable=False)
    p256dh = db.Column(db.String(255), nullable=False)
    auth = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_subscription_info(self) -> dict:
        """Shape expected by pywebpush.webpush()."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


class Notification(db.Model):
    """Inbox notification; also the source record for push delivery."""

    __tablename__ = "notifications"

    TYPE_TIP_UNLOCKED = "tip_unlocked"
    TYPE_QUIZ_REMINDER = "quiz_reminder"
    TYPE_DAILY_REMINDER = "daily_reminder"
    TYPE_ACHIEVEMENT = "achievement"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    title = db.Column(db.String(100), nullable=False)
    message = db.Column(db.String(500), nullable=False)
    notif_type = db.Column(db.String(30), nullable=False, default=TYPE_TIP_UNLOCKED)
    data = db.Column(db.JSON, nullable=False, default=dict)
    is_sent = db.Column(db.Boolean, default=False, nullable=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), index=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def mark_sent(self, when: Optional[datetime] = None) -> None:
        self.is_sent = True
        self.sent_at = to_utc(when or datetime.now(timezone.utc))

    def to_push_payload(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.message,
            "type": self.notif_type,
            "data": self.data or {},
        }


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise an instant to aware UTC before it is written."""
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc).isoformat()
