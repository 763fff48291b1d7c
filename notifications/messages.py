"""Copy for inbox/push notifications; edit here to change what learners see."""

from __future__ import annotations

from typing import Optional, Tuple

import bleach

TIP_UNLOCK_TITLES = {
    1: "🌅 Morning Tip Unlocked!",
    2: "☀️ Afternoon Tip Ready!",
    3: "🌙 Evening Tip Available!",
}
TIP_UNLOCK_MESSAGES = {
    1: 'Your first tip of the day is ready: "{title}"',
    2: 'Time for your second tip: "{title}"',
    3: 'Your final tip is waiting: "{title}"',
}
FALLBACK_TIP_TITLE = "New Tip Unlocked!"
FALLBACK_TIP_MESSAGE = 'A new tip is available: "{title}"'

ACHIEVEMENT_TITLE = "🏆 Achievement Unlocked!"
DAILY_COMPLETION_MESSAGE = "You unlocked all of today's tips. See you tomorrow for more!"
DAILY_COMPLETION_ACHIEVEMENT = "daily_completion"

QUIZ_REMINDER_TITLE = "📝 Ready for Your Assessment?"
QUIZ_REMINDER_MESSAGE = "Complete your English level quiz to unlock personalized tips!"

DAILY_REMINDER_TITLE = "🌟 New Tips Coming Soon!"
DAILY_REMINDER_MESSAGE = "Check back throughout the day for new language learning tips."

MAX_TITLE_LENGTH = 100
MAX_MESSAGE_LENGTH = 500


def clean_text(value: Optional[str], limit: int) -> str:
    """Strip any markup from admin-authored text before it reaches a device."""
    if not value:
        return ""
    cleaned = bleach.clean(value, tags=set(), attributes={}, strip=True).strip()
    return cleaned[:limit]


def tip_unlocked_copy(position: int, tip_title: str) -> Tuple[str, str]:
    safe_title = clean_text(tip_title, MAX_TITLE_LENGTH) or "Today's tip"
    title = TIP_UNLOCK_TITLES.get(position, FALLBACK_TIP_TITLE)
    message = TIP_UNLOCK_MESSAGES.get(position, FALLBACK_TIP_MESSAGE).format(title=safe_title)
    return title, message[:MAX_MESSAGE_LENGTH]
