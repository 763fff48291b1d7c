"""Daily unlock service: decides which of today's tips are visible and records it once."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import User, ensure_aware, to_utc
from notifications.dispatch import NotificationDispatcher
from daily_unlock import store
from daily_unlock.models import DailyUnlock
from daily_unlock.results import (
    ReconcileResult,
    SlotStatus,
    SweepEntry,
    SweepReport,
    TodayStatus,
    UnlockedTip,
)
from daily_unlock.schedule import ScheduleBuilder
from daily_unlock.settings import SLOTS_PER_DAY

Clock = Callable[[], datetime]

DEFAULT_HISTORY_LIMIT = 7
MAX_HISTORY_LIMIT = 60
QUIZ_REMINDER_ACTIVITY_WINDOW = timedelta(hours=24)


class DailyUnlockError(Exception):
    """Raised when a daily unlock operation cannot be served for a user."""

    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {"status": "error", "reason": message}


class UserNotEligibleError(DailyUnlockError):
    def __init__(self, message: str, reason_code: str):
        super().__init__(
            message,
            status_code=403,
            payload={"status": "error", "reason": message, "code": reason_code},
        )


class DailyUnlockService:
    """Reconciles a user's day against the clock.

    Two triggers call `reconcile`: the periodic sweep and the learner opening
    the app. Either may run while the other is in flight; each slot's
    pending -> unlocked transition is a conditional update, so only one
    caller ever reports (and notifies about) a given slot.
    """

    def __init__(
        self,
        builder: ScheduleBuilder,
        dispatcher: NotificationDispatcher,
        clock: Optional[Clock] = None,
    ) -> None:
        self.builder = builder
        self.dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return ensure_aware(self._clock())

    # ------------------------------------------------------------------ core

    def reconcile(self, user_id: int, now: Optional[datetime] = None) -> ReconcileResult:
        now = ensure_aware(now) if now is not None else self.now()
        user = self._require_eligible_user(user_id)
        try:
            return self._reconcile(user, now)
        except IntegrityError:
            # A concurrent writer committed first; start over from its state.
            db.session.rollback()
            return self._reconcile(self._require_eligible_user(user_id), now)

    def _reconcile(self, user: User, now: datetime) -> ReconcileResult:
        user_id, level = user.id, user.level
        outcome = self.builder.build_or_get_schedule(user, now)
        record = outcome.daily_unlock
        newly_unlocked: List[UnlockedTip] = list(outcome.back_unlocked)

        for slot in record.slots:
            if slot.unlocked_at is not None:
                continue
            if now < record.scheduled_at(slot.position):
                continue
            if not store.claim_slot(slot, now):
                continue
            # Catch-up unlocks are stamped with `now`, unlike creation-time back-unlocks.
            store.upsert_interaction(user_id, slot.tip_id, now, slot.position)
            newly_unlocked.append(UnlockedTip(slot.tip_id, slot.position, now))

        db.session.commit()

        for item in newly_unlocked:
            self._dispatch(
                "tip unlock",
                user_id,
                self.dispatcher.notify_tip_unlocked,
                user_id,
                item.tip_id,
                item.position,
            )

        completed = _completed_in_this_call(record, newly_unlocked)
        if completed:
            self._dispatch(
                "daily completion",
                user_id,
                self.dispatcher.notify_daily_completion,
                user_id,
                level,
            )

        return ReconcileResult(
            newly_unlocked=newly_unlocked,
            total_unlocked=record.unlocked_count,
            total_slots=len(record.slots),
            next_unlock_at=self.next_unlock_instant(record, now),
            completed_today=completed,
        )

    def next_unlock_instant(self, record: DailyUnlock, now: datetime) -> datetime:
        pending = [
            record.scheduled_at(slot.position)
            for slot in record.slots
            if slot.unlocked_at is None and record.scheduled_at(slot.position) > now
        ]
        if pending:
            return min(pending)
        return self.builder.next_day_first_unlock(record.day)

    def _dispatch(self, label: str, user_id: int, send, *args) -> None:
        try:
            send(*args)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Failed to send %s notification to user %s: %s", label, user_id, exc
            )

    # ------------------------------------------------------------- read side

    def get_today_status(self, user_id: int, now: Optional[datetime] = None) -> TodayStatus:
        """Reconcile first (opening the app is a trigger), then describe today."""
        now = ensure_aware(now) if now is not None else self.now()
        result = self.reconcile(user_id, now)
        record = store.find_by_user_and_day(user_id, self.builder.day_for(now))
        if record is None:
            raise DailyUnlockError("Today's schedule is missing.", status_code=500)

        slots_by_position = {slot.position: slot for slot in record.slots}
        slot_statuses = []
        for position in range(1, SLOTS_PER_DAY + 1):
            slot = slots_by_position.get(position)
            status = SlotStatus(position=position, scheduled_at=record.scheduled_at(position))
            if slot is not None:
                status.tip_id = slot.tip_id
                status.is_unlocked = slot.is_unlocked
                status.unlocked_at = slot.unlocked_instant
                if slot.is_unlocked and slot.tip is not None:
                    status.tip = slot.tip.to_summary_dict()
            slot_statuses.append(status)

        return TodayStatus(
            date=record.day.isoformat(),
            unlocked_count=record.unlocked_count,
            total_tips=len(record.slots),
            next_unlock_at=result.next_unlock_at,
            unlock_schedule=record.schedule,
            slots=slot_statuses,
            newly_unlocked=result.newly_unlocked,
        )

    def get_unlock_history(self, user_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[dict]:
        self._require_eligible_user(user_id)
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = DEFAULT_HISTORY_LIMIT
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return [
            record.to_dict(include_tips=True)
            for record in store.list_recent_schedules(user_id, limit)
        ]

    # ---------------------------------------------------------- batch passes

    def process_all_daily_unlocks(self, now: Optional[datetime] = None) -> SweepReport:
        """Reconcile every active, quiz-completed user; one failure never stops the pass."""
        now = ensure_aware(now) if now is not None else self.now()
        user_ids = [
            row.id
            for row in db.session.query(User.id)
            .filter(User.is_eligible_for_tips)
            .order_by(User.id.asc())
            .all()
        ]

        report = SweepReport()
        for user_id in user_ids:
            try:
                result = self.reconcile(user_id, now)
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception("Error processing unlocks for user %s", user_id)
                report.entries.append(SweepEntry(user_id=user_id, ok=False, error=str(exc)))
                continue
            report.entries.append(
                SweepEntry(user_id=user_id, ok=True, newly_unlocked=result.newly_unlocked)
            )

        if report.total_unlocks or report.failed:
            current_app.logger.info(
                "Tip unlock sweep: %s users, %s unlocks, %s failures",
                len(report.entries),
                report.total_unlocks,
                len(report.failed),
            )
        return report

    def send_daily_reminders(self) -> SweepReport:
        users = (
            db.session.query(User.id)
            .filter(User.is_eligible_for_tips)
            .order_by(User.id.asc())
            .all()
        )
        return self._remind([row.id for row in users], self.dispatcher.notify_daily_reminder, "daily")

    def send_quiz_reminders(self, now: Optional[datetime] = None) -> SweepReport:
        """Nudge recently active users who still have not taken the placement quiz."""
        now = ensure_aware(now) if now is not None else self.now()
        since = to_utc(now - QUIZ_REMINDER_ACTIVITY_WINDOW)
        users = (
            db.session.query(User.id)
            .filter(
                User.is_active.is_(True),
                User.quiz_completed.is_(False),
                User.last_login.isnot(None),
                User.last_login >= since,
            )
            .order_by(User.id.asc())
            .all()
        )
        return self._remind([row.id for row in users], self.dispatcher.notify_quiz_reminder, "quiz")

    def _remind(self, user_ids: List[int], send, label: str) -> SweepReport:
        report = SweepReport()
        for user_id in user_ids:
            try:
                send(user_id)
            except Exception as exc:
                db.session.rollback()
                current_app.logger.warning("Error sending %s reminder to user %s: %s", label, user_id, exc)
                report.entries.append(SweepEntry(user_id=user_id, ok=False, error=str(exc)))
                continue
            report.entries.append(SweepEntry(user_id=user_id, ok=True))
        return report

    # --------------------------------------------------------------- helpers

    def _require_eligible_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if user is None:
            raise UserNotEligibleError("User not found.", "user_not_found")
        if user.is_eligible_for_tips:
            return user
        if not user.is_active:
            raise UserNotEligibleError("User account is inactive.", "user_inactive")
        raise UserNotEligibleError("Quiz not completed.", "quiz_not_completed")


def _completed_in_this_call(record: DailyUnlock, newly_unlocked: List[UnlockedTip]) -> bool:
    """True only when the day's last slot flipped during this call."""
    if not record.slots or not newly_unlocked:
        return False
    if not record.is_complete:
        return False
    last_position = max(slot.position for slot in record.slots)
    return any(item.position == last_position for item in newly_unlocked)
