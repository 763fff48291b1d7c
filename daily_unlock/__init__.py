"""Daily tip unlock feature: three tips per user per day at fixed times."""

from .commands import create_daily_unlock_cli
from .routes import (
    create_admin_daily_unlock_blueprint,
    create_daily_unlock_blueprint,
)
from .schedule import ScheduleBuilder
from .service import DailyUnlockError, DailyUnlockService, UserNotEligibleError

__all__ = [
    "DailyUnlockError",
    "DailyUnlockService",
    "ScheduleBuilder",
    "UserNotEligibleError",
    "create_admin_daily_unlock_blueprint",
    "create_daily_unlock_blueprint",
    "create_daily_unlock_cli",
]
