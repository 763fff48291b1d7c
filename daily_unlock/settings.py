"""Unlock time-of-day and day-boundary settings (set DAILY_UNLOCK_TIMES to retime the feed)."""

from __future__ import annotations

from datetime import timezone, tzinfo
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UnlockTime = Tuple[int, int]

SLOTS_PER_DAY = 3
DEFAULT_UNLOCK_TIMES: Tuple[UnlockTime, ...] = ((9, 0), (14, 0), (18, 45))
DEFAULT_TIMEZONE = "UTC"


class InvalidUnlockSettings(ValueError):
    """Raised for unlock times that are not three increasing HH:MM values, or an unknown zone."""


def parse_unlock_times(raw) -> Tuple[UnlockTime, ...]:
    """Accept "09:00,14:00,18:45" or an iterable of (hour, minute) pairs."""
    if raw is None or raw == "":
        return DEFAULT_UNLOCK_TIMES

    if isinstance(raw, str):
        parts: Iterable = [chunk.strip() for chunk in raw.split(",") if chunk.strip()]
    else:
        parts = list(raw)

    times: List[UnlockTime] = []
    for part in parts:
        times.append(_parse_single_time(part))

    if len(times) != SLOTS_PER_DAY:
        raise InvalidUnlockSettings(
            f"Expected {SLOTS_PER_DAY} unlock times, got {len(times)}."
        )
    minutes = [hour * 60 + minute for hour, minute in times]
    if any(later <= earlier for earlier, later in zip(minutes, minutes[1:])):
        raise InvalidUnlockSettings("Unlock times must be strictly increasing within the day.")
    return tuple(times)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidUnlockSettings(f"Unknown timezone {name!r}.") from exc


def format_unlock_times(times: Iterable[UnlockTime]) -> str:
    return ",".join(f"{hour:02d}:{minute:02d}" for hour, minute in times)


def _parse_single_time(value) -> UnlockTime:
    if isinstance(value, str):
        try:
            hour_text, minute_text = value.split(":", 1)
            hour, minute = int(hour_text), int(minute_text)
        except ValueError as exc:
            raise InvalidUnlockSettings(f"Unlock time {value!r} is not HH:MM.") from exc
    else:
        try:
            hour, minute = (int(item) for item in value)
        except (TypeError, ValueError) as exc:
            raise InvalidUnlockSettings(f"Unlock time {value!r} is not an (hour, minute) pair.") from exc

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidUnlockSettings(f"Unlock time {hour:02d}:{minute:02d} is out of range.")
    return hour, minute
