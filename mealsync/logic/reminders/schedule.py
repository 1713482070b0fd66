"""Recurring schedule engine for weekly meal reminders.

Pure functions of a reminder and an evaluation instant. Days of week follow
the app convention 0 = Sunday .. 6 = Saturday. Instants keep the tzinfo of
the `now` they were derived from (the device's local zone in practice).
"""
import zlib
from datetime import datetime, time, timedelta
from typing import List, Optional, Tuple

from mealsync.domain.MealReminder import MealReminder
from mealsync.utilities.constants import PRE_ALERT, MAIN, ALL_DAYS
from mealsync.utilities.validators import parse_time_of_day


class Occurrence:
    def __init__(self, day_of_week: int, instant: datetime, kind: str):
        self.day_of_week = day_of_week
        self.instant = instant
        self.kind = kind

    def __eq__(self, other):
        if not isinstance(other, Occurrence):
            return NotImplemented
        return (self.day_of_week, self.instant, self.kind) == (other.day_of_week, other.instant, other.kind)

    def __hash__(self):
        return hash((self.day_of_week, self.instant, self.kind))

    def __str__(self) -> str:
        return f"{self.kind} day {self.day_of_week} at {self.instant.isoformat()}"

    __repr__ = __str__


def weekday_of(dt: datetime) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return dt.isoweekday() % 7


def next_occurrence(day_of_week: int, at: time, now: datetime) -> datetime:
    """Next instant strictly after `now` that falls on `day_of_week` at time `at`."""
    if day_of_week not in ALL_DAYS:
        raise ValueError(f"Invalid day of week: {day_of_week}")
    candidate = now.replace(hour=at.hour, minute=at.minute, second=at.second, microsecond=0)
    while weekday_of(candidate) != day_of_week:
        candidate += timedelta(days=1)
    # Same weekday but the time already passed (or is exactly now): next week.
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def subtract_minutes(at: time, minutes: int) -> Tuple[time, int]:
    """Time-of-day minus `minutes`, with borrow across midnight.

    Returns (time, days_back) where days_back counts the midnights crossed.
    """
    total = at.hour * 60 + at.minute - minutes
    days_back = 0
    while total < 0:
        total += 24 * 60
        days_back += 1
    return time(total // 60, total % 60, at.second), days_back


def derive_occurrences(reminder: MealReminder, now: datetime) -> List[Occurrence]:
    """Every concrete next notification instant of a reminder, main and pre-alert per enabled day."""
    if not reminder.enabled:
        return []
    at = parse_time_of_day(reminder.scheduled_time)
    occurrences = []
    for day in sorted(reminder.days_of_week):
        main_instant = next_occurrence(day, at, now)
        occurrences.append(Occurrence(day, main_instant, MAIN))
        if reminder.pre_alert_minutes > 0:
            # The pre-alert belongs to this main occurrence, so it may fall on the previous weekday.
            _, days_back = subtract_minutes(at, reminder.pre_alert_minutes)
            occurrences.append(Occurrence((day - days_back) % 7,
                                          main_instant - timedelta(minutes=reminder.pre_alert_minutes),
                                          PRE_ALERT))
    return occurrences


# Reminder ids stay below 900_000_000, where cooking timer ids start.
REMINDER_SLOTS = 8_999_999


def notification_base(reminder_id: str) -> int:
    """Preferred slot base of a reminder; crc32 so it survives restarts."""
    return zlib.crc32(reminder_id.encode('utf-8')) % REMINDER_SLOTS


def notification_id(reminder_id: str, day_of_week: int, kind: str, base: Optional[int] = None) -> int:
    """Numeric id for one (reminder, day, kind) slot."""
    if base is None:
        base = notification_base(reminder_id)
    return base * 100 + day_of_week * 10 + (1 if kind == PRE_ALERT else 0)


def all_notification_ids(reminder_id: str, base: Optional[int] = None) -> List[int]:
    """The 14 slots a reminder can occupy (7 days x main/pre-alert)."""
    return [notification_id(reminder_id, day, kind, base) for day in ALL_DAYS for kind in (MAIN, PRE_ALERT)]
