from __future__ import annotations

from datetime import timedelta

from conftest import DAY, at
from models import User, to_utc
from daily_unlock import store


def test_sweep_processes_only_eligible_users(service, make_user):
    ready = make_user("ready@example.com")
    make_user("pending-quiz@example.com", quiz_completed=False)
    make_user("gone@example.com", is_active=False)

    report = service.process_all_daily_unlocks(at(9, 5))

    assert [entry.user_id for entry in report.entries] == [ready.id]
    assert report.total_unlocks == 1
    assert report.failed == []


def test_sweep_isolates_failing_user(service, make_user, monkeypatch):
    healthy = make_user("healthy@example.com")
    broken = make_user("broken@example.com")
    broken_id = broken.id
    original = service.builder.build_or_get_schedule

    def flaky(user, now):
        if user.id == broken_id:
            raise RuntimeError("corrupt schedule")
        return original(user, now)

    monkeypatch.setattr(service.builder, "build_or_get_schedule", flaky)

    report = service.process_all_daily_unlocks(at(15))

    assert [entry.user_id for entry in report.failed] == [broken_id]
    assert report.failed[0].error == "corrupt schedule"
    assert [entry.user_id for entry in report.succeeded] == [healthy.id]
    assert report.total_unlocks == 2
    assert store.find_by_user_and_day(healthy.id, DAY) is not None

    payload = report.to_dict()
    assert payload["processed"] == 2
    assert payload["failed"] == 1
    assert payload["unlocked"][0]["user_id"] == healthy.id


def test_sweep_then_user_request_never_double_reports(service, learner, dispatcher):
    service.process_all_daily_unlocks(at(3))
    swept = service.process_all_daily_unlocks(at(14, 5))
    on_demand = service.reconcile(learner.id, at(14, 5))

    assert swept.total_unlocks == 2
    assert on_demand.newly_unlocked == []
    assert len(dispatcher.tip_unlocks) == 2


def test_daily_reminders_go_to_quiz_completed_users(service, make_user, dispatcher):
    ready = make_user("ready@example.com")
    make_user("pending-quiz@example.com", quiz_completed=False)

    report = service.send_daily_reminders()

    assert dispatcher.daily_reminders == [ready.id]
    assert len(report.succeeded) == 1


def test_quiz_reminders_target_recent_users_without_quiz(service, make_user, dispatcher, clock):
    clock.now = at(10)
    recent = make_user(
        "recent@example.com", quiz_completed=False, last_login=to_utc(at(10) - timedelta(hours=3))
    )
    make_user("stale@example.com", quiz_completed=False, last_login=to_utc(at(10) - timedelta(days=3)))
    make_user("done@example.com", last_login=to_utc(at(9)))

    report = service.send_quiz_reminders()

    assert dispatcher.quiz_reminders == [recent.id]
    assert len(report.entries) == 1


def test_reminder_failures_are_reported_not_raised(service, make_user, dispatcher):
    user = make_user("ready@example.com")
    dispatcher.fail_with = RuntimeError("inbox offline")

    report = service.send_daily_reminders()

    assert [entry.user_id for entry in report.failed] == [user.id]
    assert report.failed[0].error == "inbox offline"


def test_eligibility_matches_in_python_and_sql(make_user):
    ready = make_user("ready@example.com")
    pending = make_user("pending-quiz@example.com", quiz_completed=False)
    gone = make_user("gone@example.com", is_active=False)

    assert ready.is_eligible_for_tips is True
    assert pending.is_eligible_for_tips is False
    assert gone.is_eligible_for_tips is False
    assert [user.id for user in User.query.filter(User.is_eligible_for_tips).all()] == [ready.id]
