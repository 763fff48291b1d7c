"""Builds (or fetches) a user's schedule for the calendar day containing `now`."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional, Sequence

from flask import current_app, has_app_context

from models import User, ensure_aware, to_utc
from daily_unlock import pool, store
from daily_unlock.models import DailyUnlock, UnlockSlot
from daily_unlock.results import UnlockedTip
from daily_unlock.settings import DEFAULT_UNLOCK_TIMES, SLOTS_PER_DAY, UnlockTime


def day_start_for(now: datetime, tz: tzinfo) -> datetime:
    """Midnight (in `tz`) of the day containing `now`."""
    local = ensure_aware(now).astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def compute_schedule(day: date, unlock_times: Sequence[UnlockTime], tz: tzinfo) -> List[datetime]:
    """Absolute UTC instants for each configured time of day on `day`."""
    return [
        datetime.combine(day, time(hour, minute), tzinfo=tz).astimezone(timezone.utc)
        for hour, minute in unlock_times
    ]


@dataclass
class BuildOutcome:
    daily_unlock: DailyUnlock
    created: bool
    back_unlocked: List[UnlockedTip] = field(default_factory=list)


class ScheduleBuilder:
    """Creates the day's record lazily and keeps its times in line with config."""

    def __init__(
        self,
        unlock_times: Sequence[UnlockTime] = DEFAULT_UNLOCK_TIMES,
        tz: tzinfo = timezone.utc,
        rng: Optional[random.Random] = None,
    ) -> None:
        if len(unlock_times) != SLOTS_PER_DAY:
            raise ValueError(f"Exactly {SLOTS_PER_DAY} unlock times are required.")
        self.unlock_times = tuple(unlock_times)
        self.tz = tz
        self._rng = rng or random.Random()

    def day_for(self, now: datetime) -> date:
        return day_start_for(now, self.tz).date()

    def schedule_for(self, day: date) -> List[datetime]:
        return compute_schedule(day, self.unlock_times, self.tz)

    def next_day_first_unlock(self, day: date) -> datetime:
        return self.schedule_for(day + timedelta(days=1))[0]

    def build_or_get_schedule(self, user: User, now: datetime) -> BuildOutcome:
        now = ensure_aware(now)
        day = self.day_for(now)

        existing = store.find_by_user_and_day(user.id, day)
        if existing is not None:
            self._migrate_schedule_times(existing)
            return BuildOutcome(existing, created=False)

        record, back_unlocked = self._new_schedule(user, day, now)
        record, created = store.upsert_schedule(record)
        if not created:
            # Lost the creation race; the winner owns the back-unlocks.
            self._migrate_schedule_times(record)
            return BuildOutcome(record, created=False)
        return BuildOutcome(record, created=True, back_unlocked=back_unlocked)

    def _new_schedule(self, user: User, day: date, now: datetime):
        candidates = list(pool.select_candidates(user.id, user.level))
        self._rng.shuffle(candidates)
        selected = candidates[:SLOTS_PER_DAY]

        first, second, third = self.schedule_for(day)
        record = DailyUnlock(
            user_id=user.id,
            day=day,
            day_start=to_utc(day_start_for(now, self.tz)),
            first_unlock_at=first,
            second_unlock_at=second,
            third_unlock_at=third,
            slots=[
                UnlockSlot(tip_id=tip.id, position=index)
                for index, tip in enumerate(selected, start=1)
            ],
        )

        # Overdue slots on a brand-new record unlock at their scheduled instant, not `now`.
        back_unlocked: List[UnlockedTip] = []
        for slot in record.slots:
            scheduled = record.scheduled_at(slot.position)
            if scheduled <= now:
                slot.unlocked_at = to_utc(scheduled)
                store.upsert_interaction(user.id, slot.tip_id, scheduled, slot.position)
                back_unlocked.append(UnlockedTip(slot.tip_id, slot.position, scheduled))
        return record, back_unlocked

    def _migrate_schedule_times(self, record: DailyUnlock) -> None:
        expected = self.schedule_for(record.day)
        if ensure_aware(record.third_unlock_at) == expected[2]:
            return
        if has_app_context():
            current_app.logger.info(
                "Re-timing daily unlock %s (user %s, %s) to %s",
                record.id,
                record.user_id,
                record.day,
                ", ".join(instant.isoformat() for instant in expected),
            )
        store.save_schedule_times(record, expected)
