from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app import create_app
from extensions import db
from models import Tip, User
from daily_unlock.schedule import ScheduleBuilder
from daily_unlock.service import DailyUnlockService

DAY = date(2026, 3, 10)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


class RecordingDispatcher:
    """Collects outbound notifications; set `fail_with` to make every call raise."""

    def __init__(self) -> None:
        self.tip_unlocks = []
        self.completions = []
        self.daily_reminders = []
        self.quiz_reminders = []
        self.fail_with = None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def notify_tip_unlocked(self, user_id, tip_id, position):
        self._maybe_fail()
        self.tip_unlocks.append((user_id, tip_id, position))

    def notify_daily_completion(self, user_id, level):
        self._maybe_fail()
        self.completions.append((user_id, level))

    def notify_daily_reminder(self, user_id):
        self._maybe_fail()
        self.daily_reminders.append(user_id)

    def notify_quiz_reminder(self, user_id):
        self._maybe_fail()
        self.quiz_reminders.append(user_id)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return FrozenClock(at(3))


@pytest.fixture
def app(dispatcher, clock):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "DAILY_UNLOCK_TIMES": "09:00,14:00,18:45",
            "DAILY_UNLOCK_TIMEZONE": "UTC",
            "USE_PUSH_NOTIFICATIONS": False,
        },
        dispatcher=dispatcher,
        clock=clock,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def builder(app):
    return ScheduleBuilder(((9, 0), (14, 0), (18, 45)), timezone.utc)


@pytest.fixture
def service(builder, dispatcher, clock):
    return DailyUnlockService(builder, dispatcher, clock=clock)


def _make_tips(level: int, count: int, prefix: str = "Tip"):
    tips = [
        Tip(title=f"{prefix} L{level} #{index}", content="...", category="Grammar", level=level)
        for index in range(1, count + 1)
    ]
    db.session.add_all(tips)
    return tips


@pytest.fixture
def tips(app):
    level_two = _make_tips(2, 6)
    _make_tips(3, 4)
    _make_tips(5, 2)
    db.session.add(Tip(title="Retired tip", content="...", level=2, is_active=False))
    db.session.commit()
    return level_two


@pytest.fixture
def learner(app, tips):
    user = User(email="learner@example.com", level=2, quiz_completed=True)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_user(app, tips):
    def _make(email: str, level: int = 2, quiz_completed: bool = True, is_active: bool = True, **extra):
        user = User(
            email=email,
            level=level,
            quiz_completed=quiz_completed,
            is_active=is_active,
            **extra,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make
