# apps/availability/validation.py
from __future__ import annotations

import calendar
from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from django.conf import settings
from django.utils import timezone

from .models import Availability, CalculatedSlot

Window = Tuple[datetime, datetime]

OVERLAP = "overlap"


class Problem(str):
    """A validation message that also carries a machine-readable code."""

    def __new__(cls, message: str, code: str = "invalid"):
        obj = super().__new__(cls, message)
        obj.code = code
        return obj


def is_overlap(problem) -> bool:
    return getattr(problem, "code", None) == OVERLAP


def _overlaps(a: Window, b: Window) -> bool:
    # half-open intervals; a window ending at 10:00 does not clash with one starting at 10:00
    return a[0] < b[1] and b[0] < a[1]


def latest_allowed_start(now: Optional[datetime] = None) -> datetime:
    """End of the calendar month AVAILABILITY_MAX_FUTURE_MONTHS - 1 months after this one."""
    now = timezone.localtime(now or timezone.now())
    months_ahead = getattr(settings, "AVAILABILITY_MAX_FUTURE_MONTHS", 3) - 1
    month_index = now.month - 1 + months_ahead
    year, month = now.year + month_index // 12, month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return timezone.make_aware(
        datetime.combine(now.replace(year=year, month=month, day=last_day).date(), time.max),
        timezone.get_current_timezone(),
    )


def _window_errors(start: datetime, end: datetime, now: datetime) -> List[str]:
    errors: List[str] = []
    if end <= start:
        errors.append("End time must be after start time")
        return errors

    min_minutes = getattr(settings, "AVAILABILITY_MIN_DURATION_MINUTES", 15)
    if end - start < timedelta(minutes=min_minutes):
        errors.append(f"Availability duration must be at least {min_minutes} minutes")

    max_past = getattr(settings, "AVAILABILITY_MAX_PAST_DAYS", 30)
    if start < now - timedelta(days=max_past):
        errors.append(f"Cannot create availability more than {max_past} days in the past")

    if start > latest_allowed_start(now):
        months = getattr(settings, "AVAILABILITY_MAX_FUTURE_MONTHS", 3)
        errors.append(f"Cannot create availability more than {months} months in advance")
    return errors


def find_overlapping(
    provider,
    start: datetime,
    end: datetime,
    exclude_ids: Iterable[int] = (),
):
    qs = Availability.objects.blocking().overlapping(start, end).filter(provider=provider)
    exclude_ids = [i for i in exclude_ids if i]
    if exclude_ids:
        qs = qs.exclude(id__in=exclude_ids)
    return qs.order_by("start")


def validate_availability(
    provider,
    start: datetime,
    end: datetime,
    exclude_id: Optional[int] = None,
    instances: Optional[Sequence[Window]] = None,
    exclude_ids: Iterable[int] = (),
    now: Optional[datetime] = None,
) -> List[str]:
    """
    I return a list of human-readable problems; an empty list means the
    window (or every instance of a recurring window) can be saved. Each
    problem is a `Problem`, and clashes carry the OVERLAP code.
    """
    now = now or timezone.now()
    windows = list(instances) if instances else [(start, end)]
    skip = [exclude_id, *exclude_ids]
    errors: List[str] = []

    for i, (s, e) in enumerate(windows):
        prefix = f"Occurrence {i + 1}: " if len(windows) > 1 else ""
        problems = _window_errors(s, e, now)
        if not problems:
            clash = find_overlapping(provider, s, e, skip).first()
            if clash:
                local = timezone.localtime(clash.start)
                problems.append(Problem(
                    "Overlaps with existing availability on "
                    f"{local:%a %d %b %Y %H:%M}-{timezone.localtime(clash.end):%H:%M}",
                    OVERLAP,
                ))
        errors.extend(Problem(prefix + p, getattr(p, "code", "invalid")) for p in problems)

    # instances of the new series must not clash with each other
    for i in range(len(windows)):
        for j in range(i + 1, len(windows)):
            if _overlaps(windows[i], windows[j]):
                errors.append(Problem(f"Occurrences {i + 1} and {j + 1} overlap each other", OVERLAP))
    return errors


def can_update_availability(availability) -> dict:
    booked = CalculatedSlot.objects.filter(availability=availability).booked().count()
    return {
        "can_update": booked == 0,
        "booked_slots": booked,
        "reason": (
            f"Availability has {booked} booked slot(s); times can only change around them"
            if booked
            else ""
        ),
    }
