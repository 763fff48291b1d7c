"""Persistence helpers for daily schedules and per-tip unlock markers.

Nothing here decides *when* a tip unlocks; the service layer does that. These
helpers only guarantee the storage-level invariants the service leans on:
one schedule per (user, day), one interaction per (user, tip), and a slot
transition that only one writer can win.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Tip, UserTipInteraction, to_utc
from daily_unlock.models import DailyUnlock, UnlockSlot


def find_by_user_and_day(user_id: int, day: date) -> Optional[DailyUnlock]:
    return DailyUnlock.query.filter_by(user_id=user_id, day=day).first()


def upsert_schedule(daily_unlock: DailyUnlock) -> Tuple[DailyUnlock, bool]:
    """Insert a freshly built schedule; returns (record, created).

    When another writer created the same (user, day) first, the pending
    transaction is rolled back and the winner's record is returned instead.
    """
    db.session.add(daily_unlock)
    try:
        db.session.commit()
        return daily_unlock, True
    except IntegrityError:
        db.session.rollback()

    existing = find_by_user_and_day(daily_unlock.user_id, daily_unlock.day)
    if existing is None:
        # The conflict was not the (user, day) key; nothing sensible to fall back to.
        raise LookupError(
            f"Daily unlock for user {daily_unlock.user_id} on {daily_unlock.day} could not be saved."
        )
    return existing, False


def save_schedule_times(daily_unlock: DailyUnlock, schedule: Sequence[datetime]) -> None:
    """Overwrite only the three scheduled instants of an existing record."""
    first, second, third = schedule
    daily_unlock.first_unlock_at = to_utc(first)
    daily_unlock.second_unlock_at = to_utc(second)
    daily_unlock.third_unlock_at = to_utc(third)
    db.session.commit()


def claim_slot(slot: UnlockSlot, unlocked_at: datetime) -> bool:
    """Move a slot from pending to unlocked; False when another writer already did."""
    updated = (
        db.session.query(UnlockSlot)
        .filter(UnlockSlot.id == slot.id, UnlockSlot.unlocked_at.is_(None))
        .update({UnlockSlot.unlocked_at: to_utc(unlocked_at)}, synchronize_session=False)
    )
    if updated:
        slot.unlocked_at = to_utc(unlocked_at)
        return True
    db.session.refresh(slot)
    return False


def upsert_interaction(
    user_id: int,
    tip_id: int,
    unlocked_at: datetime,
    unlock_order: int,
) -> UserTipInteraction:
    """Mark a tip as unlocked for the user; repeating the call is harmless."""
    interaction = UserTipInteraction.query.filter_by(user_id=user_id, tip_id=tip_id).first()
    if interaction is None:
        interaction = UserTipInteraction(user_id=user_id, tip_id=tip_id)
        db.session.add(interaction)
    interaction.is_unlocked = True
    interaction.unlocked_at = to_utc(unlocked_at)
    interaction.unlock_order = unlock_order
    return interaction


def bulk_reset_interactions(user_id: int, level: int) -> int:
    """Clear unlock flags on every interaction the user has with tips of `level`."""
    level_tip_ids = select(Tip.id).where(Tip.level == level)
    return (
        db.session.query(UserTipInteraction)
        .filter(
            UserTipInteraction.user_id == user_id,
            UserTipInteraction.tip_id.in_(level_tip_ids),
        )
        .update(
            {UserTipInteraction.is_unlocked: False, UserTipInteraction.unlock_order: None},
            synchronize_session="fetch",
        )
    )


def list_active_tips_for_level(level: int) -> List[Tip]:
    return (
        Tip.query.filter(Tip.level == level, Tip.is_active.is_(True))
        .order_by(Tip.id.asc())
        .all()
    )


def unlocked_tip_ids(user_id: int, tip_ids: Iterable[int]) -> Set[int]:
    tip_ids = list(tip_ids)
    if not tip_ids:
        return set()
    rows = (
        db.session.query(UserTipInteraction.tip_id)
        .filter(
            UserTipInteraction.user_id == user_id,
            UserTipInteraction.is_unlocked.is_(True),
            UserTipInteraction.tip_id.in_(tip_ids),
        )
        .all()
    )
    return {row.tip_id for row in rows}


def list_recent_schedules(user_id: int, limit: int) -> List[DailyUnlock]:
    return (
        DailyUnlock.query.filter_by(user_id=user_id)
        .order_by(DailyUnlock.day.desc())
        .limit(limit)
        .all()
    )
