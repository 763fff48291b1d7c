"""Result objects returned by the daily unlock service (serialised by the routes)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from models import isoformat_or_none


@dataclass(frozen=True)
class UnlockedTip:
    """A slot that transitioned to unlocked during one reconcile call."""

    tip_id: int
    position: int
    unlocked_at: datetime

    def to_dict(self) -> dict:
        return {
            "tip_id": self.tip_id,
            "unlock_order": self.position,
            "unlocked_at": isoformat_or_none(self.unlocked_at),
        }


@dataclass
class ReconcileResult:
    newly_unlocked: List[UnlockedTip]
    total_unlocked: int
    total_slots: int
    next_unlock_at: datetime
    completed_today: bool = False

    def to_dict(self) -> dict:
        return {
            "newly_unlocked": [item.to_dict() for item in self.newly_unlocked],
            "total_unlocked": self.total_unlocked,
            "total_slots": self.total_slots,
            "next_unlock": isoformat_or_none(self.next_unlock_at),
            "completed_today": self.completed_today,
        }


@dataclass
class SlotStatus:
    position: int
    scheduled_at: datetime
    tip_id: Optional[int] = None
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    tip: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "scheduled_at": isoformat_or_none(self.scheduled_at),
            "tip_id": self.tip_id if self.is_unlocked else None,
            "is_unlocked": self.is_unlocked,
            "unlocked_at": isoformat_or_none(self.unlocked_at),
            "tip": self.tip if self.is_unlocked else None,
        }


@dataclass
class TodayStatus:
    """Read model for the "today's tips" screen."""

    date: str
    unlocked_count: int
    total_tips: int
    next_unlock_at: datetime
    unlock_schedule: List[datetime]
    slots: List[SlotStatus]
    newly_unlocked: List[UnlockedTip] = field(default_factory=list)

    @property
    def is_all_unlocked(self) -> bool:
        return self.total_tips > 0 and self.unlocked_count == self.total_tips

    def to_dict(self) -> dict:
        first, second, third = self.unlock_schedule
        return {
            "date": self.date,
            "unlocked_count": self.unlocked_count,
            "total_tips": self.total_tips,
            "next_unlock": isoformat_or_none(self.next_unlock_at),
            "unlock_schedule": {
                "first_unlock": isoformat_or_none(first),
                "second_unlock": isoformat_or_none(second),
                "third_unlock": isoformat_or_none(third),
            },
            "slots": [slot.to_dict() for slot in self.slots],
            "is_all_unlocked": self.is_all_unlocked,
            "newly_unlocked": [item.to_dict() for item in self.newly_unlocked],
        }


@dataclass
class SweepEntry:
    user_id: int
    ok: bool
    newly_unlocked: List[UnlockedTip] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "user_id": self.user_id,
            "ok": self.ok,
            "newly_unlocked": [item.to_dict() for item in self.newly_unlocked],
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class SweepReport:
    """Aggregate outcome of a pass over many users; never aborted by one failure."""

    entries: List[SweepEntry] = field(default_factory=list)

    @property
    def succeeded(self) -> List[SweepEntry]:
        return [entry for entry in self.entries if entry.ok]

    @property
    def failed(self) -> List[SweepEntry]:
        return [entry for entry in self.entries if not entry.ok]

    @property
    def total_unlocks(self) -> int:
        return sum(len(entry.newly_unlocked) for entry in self.entries)

    def to_dict(self) -> dict:
        return {
            "processed": len(self.entries),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "total_unlocks": self.total_unlocks,
            "failures": [entry.to_dict() for entry in self.failed],
            "unlocked": [entry.to_dict() for entry in self.succeeded if entry.newly_unlocked],
        }
