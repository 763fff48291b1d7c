"""Candidate tips for a user's next daily schedule."""

from __future__ import annotations

from typing import List

from flask import current_app, has_app_context

from models import Tip
from daily_unlock import store
from daily_unlock.settings import SLOTS_PER_DAY


def select_candidates(user_id: int, level: int) -> List[Tip]:
    """Active tips at `level` the user has not unlocked yet, ordered by id.

    Side effect: when fewer than SLOTS_PER_DAY unseen tips remain, the user's
    unlock history for this level is reset (see `reset_unlock_history`) and the
    whole level pool is returned, so previously seen tips come round again.
    The reset is flushed but not committed; it lands with the caller's commit.
    """
    pool = store.list_active_tips_for_level(level)
    seen = store.unlocked_tip_ids(user_id, (tip.id for tip in pool))
    candidates = [tip for tip in pool if tip.id not in seen]

    if len(candidates) < SLOTS_PER_DAY:
        reset_unlock_history(user_id, level)
        return pool
    return candidates


def reset_unlock_history(user_id: int, level: int) -> int:
    """Make every tip at `level` eligible again for this user."""
    cleared = store.bulk_reset_interactions(user_id, level)
    if has_app_context():
        current_app.logger.info(
            "Tip pool exhausted for user %s at level %s; cleared %s unlock markers",
            user_id,
            level,
            cleared,
        )
    return cleared
