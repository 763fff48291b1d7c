"""Database models for the daily tip schedule (one record per user per day)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func

from extensions import db
from models import ensure_aware, isoformat_or_none


class DailyUnlock(db.Model):
    """A user's schedule for one calendar day (unique per user/day)."""

    __tablename__ = "daily_unlocks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    day = db.Column(db.Date, index=True, nullable=False)
    day_start = db.Column(db.DateTime(timezone=True), nullable=False)

    first_unlock_at = db.Column(db.DateTime(timezone=True), nullable=False)
    second_unlock_at = db.Column(db.DateTime(timezone=True), nullable=False)
    third_unlock_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    slots = db.relationship(
        "UnlockSlot",
        back_populates="daily_unlock",
        order_by="UnlockSlot.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "day", name="uq_daily_unlock_user_day"),
    )

    @property
    def schedule(self) -> List[datetime]:
        """The three unlock instants, aware UTC, in position order."""
        return [
            ensure_aware(self.first_unlock_at),
            ensure_aware(self.second_unlock_at),
            ensure_aware(self.third_unlock_at),
        ]

    def scheduled_at(self, position: int) -> datetime:
        return self.schedule[position - 1]

    @property
    def unlocked_count(self) -> int:
        return sum(1 for slot in self.slots if slot.unlocked_at is not None)

    @property
    def is_complete(self) -> bool:
        return bool(self.slots) and self.unlocked_count == len(self.slots)

    def to_dict(self, include_tips: bool = False) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.day.isoformat(),
            "day_start": isoformat_or_none(self.day_start),
            "unlock_schedule": {
                "first_unlock": isoformat_or_none(self.first_unlock_at),
                "second_unlock": isoformat_or_none(self.second_unlock_at),
                "third_unlock": isoformat_or_none(self.third_unlock_at),
            },
            "slots": [slot.to_dict(include_tip=include_tips) for slot in self.slots],
            "unlocked_count": self.unlocked_count,
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<DailyUnlock id={self.id} user={self.user_id} day={self.day}>"


class UnlockSlot(db.Model):
    """One of the day's unlock positions; unlocked_at is written once."""

    __tablename__ = "daily_unlock_slots"

    id = db.Column(db.Integer, primary_key=True)
    daily_unlock_id = db.Column(
        db.Integer,
        db.ForeignKey("daily_unlocks.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    tip_id = db.Column(db.Integer, db.ForeignKey("tips.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    unlocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    daily_unlock = db.relationship("DailyUnlock", back_populates="slots")
    tip = db.relationship("Tip", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("daily_unlock_id", "position", name="uq_slot_position"),
        db.UniqueConstraint("daily_unlock_id", "tip_id", name="uq_slot_tip"),
        db.CheckConstraint("position BETWEEN 1 AND 3", name="ck_slot_position_range"),
    )

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None

    @property
    def unlocked_instant(self) -> Optional[datetime]:
        return ensure_aware(self.unlocked_at)

    def to_dict(self, include_tip: bool = False) -> dict:
        payload = {
            "tip_id": self.tip_id,
            "position": self.position,
            "unlocked_at": isoformat_or_none(self.unlocked_at),
            "is_unlocked": self.is_unlocked,
        }
        if include_tip and self.tip is not None:
            payload["tip"] = self.tip.to_summary_dict()
        return payload
