from __future__ import annotations

from conftest import DAY, at
from extensions import db
from models import Tip, UserTipInteraction
from daily_unlock import pool, store


def _unlock(user_id, tip, order=1):
    store.upsert_interaction(user_id, tip.id, at(9), order)
    db.session.commit()


def test_candidates_are_active_tips_at_user_level(learner, tips):
    candidates = pool.select_candidates(learner.id, 2)

    assert [tip.id for tip in candidates] == [tip.id for tip in tips]
    assert all(tip.level == 2 and tip.is_active for tip in candidates)


def test_unlocked_tips_are_excluded(learner, tips):
    _unlock(learner.id, tips[0])
    _unlock(learner.id, tips[3], order=2)

    candidates = pool.select_candidates(learner.id, 2)

    assert {tip.id for tip in candidates} == {tips[1].id, tips[2].id, tips[4].id, tips[5].id}


def test_read_but_reset_tips_are_candidates_again(learner, tips):
    db.session.add(UserTipInteraction(user_id=learner.id, tip_id=tips[0].id, is_read=True))
    db.session.commit()

    candidates = pool.select_candidates(learner.id, 2)

    assert tips[0].id in {tip.id for tip in candidates}


def test_exhausted_pool_resets_history_and_returns_everything(learner, tips):
    for order, tip in enumerate(tips[:4], start=1):
        _unlock(learner.id, tip, order=min(order, 3))

    candidates = pool.select_candidates(learner.id, 2)
    db.session.commit()

    assert [tip.id for tip in candidates] == [tip.id for tip in tips]
    interactions = UserTipInteraction.query.filter_by(user_id=learner.id).all()
    assert len(interactions) == 4
    assert all(not row.is_unlocked and row.unlock_order is None for row in interactions)
    # The unlock timestamp is history, not eligibility; it is kept.
    assert all(row.unlocked_at is not None for row in interactions)


def test_reset_only_touches_the_requested_level(learner, tips):
    other_level_tip = Tip.query.filter_by(level=3).first()
    _unlock(learner.id, other_level_tip)
    _unlock(learner.id, tips[0])

    cleared = pool.reset_unlock_history(learner.id, 2)
    db.session.commit()

    assert cleared == 1
    other = UserTipInteraction.query.filter_by(user_id=learner.id, tip_id=other_level_tip.id).one()
    assert other.is_unlocked is True


def test_fresh_unlocks_do_not_come_back_until_reset(service, learner, tips):
    service.reconcile(learner.id, at(20))
    today = {slot.tip_id for slot in store.find_by_user_and_day(learner.id, DAY).slots}

    remaining = {tip.id for tip in pool.select_candidates(learner.id, 2)}

    assert today.isdisjoint(remaining)
    assert len(remaining) == 3
