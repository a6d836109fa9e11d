# apps/availability/recurrence.py
"""
Recurrence patterns for availability.

A pattern is a plain dict stored on each occurrence row:

    {"option": "WEEKLY", "weekly_day": 1, "custom_days": None, "end_date": "2026-03-03"}

Days are numbered 0=Sunday … 6=Saturday. Occurrences keep the local
wall-clock start of the first instance, so a 09:00 window stays at 09:00
across DST changes.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_date


class RecurrenceOption:
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"

    choices = [
        (NONE, "Does not repeat"),
        (DAILY, "Daily"),
        (WEEKLY, "Weekly"),
        (CUSTOM, "Custom"),
    ]
    values = [c[0] for c in choices]


DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_SHORT = ["S", "M", "T", "W", "T", "F", "S"]


def day_of_week(d: date | datetime) -> int:
    """0=Sunday … 6=Saturday (Python's weekday() starts on Monday)."""
    return (d.weekday() + 1) % 7


def _end_date_of(pattern: dict, start: datetime) -> date:
    raw = pattern.get("end_date")
    if isinstance(raw, date):
        return raw
    parsed = parse_date(raw) if raw else None
    if parsed:
        return parsed
    weeks = getattr(settings, "RECURRENCE_DEFAULT_WEEKS", 4)
    return timezone.localtime(start).date() + timedelta(days=7 * weeks)


def create_recurrence_pattern(
    option: str,
    start: datetime,
    custom_days: Optional[Iterable[int]] = None,
    end_date: Optional[date | str] = None,
) -> dict:
    pattern: dict = {"option": option}
    if option != RecurrenceOption.NONE:
        if end_date is None:
            end_date = _end_date_of({}, start)
        pattern["end_date"] = end_date.isoformat() if isinstance(end_date, date) else str(end_date)

    if option == RecurrenceOption.WEEKLY:
        pattern["weekly_day"] = day_of_week(timezone.localtime(start))
    elif option == RecurrenceOption.CUSTOM:
        pattern["custom_days"] = sorted(set(custom_days or []))
    return pattern


def is_valid_recurrence_pattern(pattern: Optional[dict]) -> bool:
    if not isinstance(pattern, dict):
        return False
    option = pattern.get("option")
    if option in (RecurrenceOption.NONE, RecurrenceOption.DAILY):
        return True
    if option == RecurrenceOption.WEEKLY:
        return pattern.get("weekly_day") in range(7)
    if option == RecurrenceOption.CUSTOM:
        days = pattern.get("custom_days") or []
        return bool(days) and all(d in range(7) for d in days)
    return False


def _format_display_date(d: date) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def describe_recurrence(pattern: Optional[dict]) -> str:
    """Human label such as "Weekly on M, W until Mar 3, 2026"."""
    if not pattern:
        return "Does not repeat"
    raw_end = pattern.get("end_date")
    end = parse_date(raw_end) if isinstance(raw_end, str) else raw_end
    until = f" until {_format_display_date(end)}" if end else ""

    option = pattern.get("option")
    if option == RecurrenceOption.NONE:
        return "Does not repeat"
    if option == RecurrenceOption.DAILY:
        return f"Daily{until}"
    if option == RecurrenceOption.WEEKLY:
        day = pattern.get("weekly_day")
        if day is not None:
            return f"Weekly on {DAY_NAMES[day]}{until}"
        return f"Weekly{until}"
    if option == RecurrenceOption.CUSTOM:
        days = sorted(pattern.get("custom_days") or [])
        if days:
            return f"Weekly on {', '.join(DAY_SHORT[d] for d in days)}{until}"
        return f"Custom weekly{until}"
    return "Unknown"


def _next_date(option: str, current: date, custom_days: List[int]) -> Optional[date]:
    if option == RecurrenceOption.DAILY:
        return current + timedelta(days=1)
    if option == RecurrenceOption.WEEKLY:
        return current + timedelta(days=7)
    if option == RecurrenceOption.CUSTOM:
        if not custom_days:
            return None
        today = day_of_week(current)
        later = [d for d in custom_days if d > today]
        # wrap into next week when nothing is left in this one
        step = (later[0] - today) if later else (7 - today + custom_days[0])
        return current + timedelta(days=step)
    return None


def generate_recurring_instances(
    pattern: Optional[dict],
    start: datetime,
    end: datetime,
    max_instances: Optional[int] = None,
) -> List[Tuple[datetime, datetime]]:
    """
    Expand a pattern into concrete (start, end) pairs. The original window is
    always the first pair; later ones stop after the end-of-day of
    `end_date` or once `max_instances` pairs exist.
    """
    if max_instances is None:
        max_instances = getattr(settings, "AVAILABILITY_MAX_RECURRING_INSTANCES", 365)

    instances: List[Tuple[datetime, datetime]] = [(start, end)]
    if not pattern or pattern.get("option", RecurrenceOption.NONE) == RecurrenceOption.NONE:
        return instances

    option = pattern["option"]
    tz = timezone.get_current_timezone()
    local_start = timezone.localtime(start, tz)
    wall_clock: time = local_start.time().replace(tzinfo=None)
    duration = end - start
    last_day = _end_date_of(pattern, start)
    custom_days = sorted(set(pattern.get("custom_days") or []))

    current = local_start.date()
    while len(instances) < max_instances:
        nxt = _next_date(option, current, custom_days)
        if nxt is None or nxt > last_day:
            break
        occ_start = timezone.make_aware(datetime.combine(nxt, wall_clock), tz)
        instances.append((occ_start, occ_start + duration))
        current = nxt
    return instances
