# apps/availability/scheduling.py
"""
Slot carving: turn one availability window into bookable (start, end) slots.

    CONTINUOUS       back-to-back slots from the window start
    FIXED_INTERVAL   starts on 15/30/60-minute clock boundaries, one per boundary
    CUSTOM_INTERVAL  starts every `interval` minutes from the window start

A slot is kept only if it ends at or before the window end.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import List, Optional

from django.utils import timezone

from .models import SchedulingRule

QUARTER_HOUR = 15
HALF_HOUR = 30
HOUR = 60
ALIGNMENTS = (QUARTER_HOUR, HALF_HOUR, HOUR)

MAX_CUSTOM_INTERVAL = 24 * 60


@dataclass
class TimeSlot:
    start: datetime
    end: datetime
    duration: int


@dataclass
class SlotCarvingResult:
    slots: List[TimeSlot] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.slots)


def _to_utc(dt: datetime) -> datetime:
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_current_timezone())
    return dt.astimezone(dt_timezone.utc)


def next_aligned_time(when: datetime, align_minutes: int) -> datetime:
    """First local clock boundary of `align_minutes` at or after `when`."""
    local = timezone.localtime(_to_utc(when)).replace(second=0, microsecond=0)
    top = local.replace(minute=0)
    boundary = math.ceil(local.minute / align_minutes) * align_minutes
    aligned = _to_utc(top) + timedelta(minutes=boundary)
    if aligned < _to_utc(when):
        aligned += timedelta(minutes=align_minutes)
    return aligned


def generate_time_slots(
    start: datetime,
    end: datetime,
    duration: int,
    rule: str = SchedulingRule.CONTINUOUS,
    interval: Optional[int] = None,
    align: Optional[int] = None,
) -> SlotCarvingResult:
    result = SlotCarvingResult()

    if end <= start:
        result.errors.append("Availability end time must be after start time")
    if not duration or duration <= 0:
        result.errors.append("Service duration must be positive")
    if rule == SchedulingRule.CUSTOM_INTERVAL and not interval:
        result.errors.append("Scheduling interval required for CUSTOM_INTERVAL rule")
    if result.errors:
        return result

    window_end = _to_utc(end)
    length = timedelta(minutes=duration)

    if rule == SchedulingRule.CONTINUOUS:
        # whole minutes, at or after the window start
        cursor = _to_utc(start).replace(second=0, microsecond=0)
        if cursor < _to_utc(start):
            cursor += timedelta(minutes=1)
        step = length
    elif rule == SchedulingRule.FIXED_INTERVAL:
        align = align if align in ALIGNMENTS else QUARTER_HOUR
        cursor = next_aligned_time(start, align)
        step = timedelta(minutes=align)
    elif rule == SchedulingRule.CUSTOM_INTERVAL:
        cursor = _to_utc(start)
        step = timedelta(minutes=interval)
    else:
        result.errors.append(f"Unsupported scheduling rule: {rule}")
        return result

    while cursor < window_end:
        slot_end = cursor + length
        if slot_end > window_end:
            break
        result.slots.append(TimeSlot(start=cursor, end=slot_end, duration=duration))
        cursor += step
    return result


# ---- rule helpers ----

def validate_scheduling_rule_config(
    rule: str,
    interval: Optional[int] = None,
    align_to_hour: bool = False,
    align_to_half_hour: bool = False,
    align_to_quarter_hour: bool = False,
) -> List[str]:
    errors: List[str] = []
    if rule not in SchedulingRule.values:
        errors.append("Invalid scheduling rule")
        return errors

    if rule == SchedulingRule.CUSTOM_INTERVAL:
        if not interval or interval <= 0:
            errors.append("Custom interval must be a positive number")
        elif interval > MAX_CUSTOM_INTERVAL:
            errors.append("Custom interval cannot exceed 24 hours (1440 minutes)")
    elif rule == SchedulingRule.FIXED_INTERVAL:
        chosen = [a for a in (align_to_hour, align_to_half_hour, align_to_quarter_hour) if a]
        if not chosen:
            errors.append("Fixed interval rule requires at least one alignment option")
        elif len(chosen) > 1:
            errors.append("Only one alignment option can be selected for fixed interval rule")
    return errors


def calculate_optimal_interval(duration: int, rule: str, buffer_minutes: int = 0) -> int:
    total = duration + (buffer_minutes or 0)
    if rule == SchedulingRule.CONTINUOUS:
        return duration
    if rule == SchedulingRule.FIXED_INTERVAL:
        for step in ALIGNMENTS:
            if total <= step:
                return step
        return math.ceil(total / HOUR) * HOUR
    if rule == SchedulingRule.CUSTOM_INTERVAL:
        return max(total, 5)
    return duration


def is_slot_valid_for_rule(slot_start: datetime, rule: str, align: Optional[int] = None) -> bool:
    if rule in (SchedulingRule.CONTINUOUS, SchedulingRule.CUSTOM_INTERVAL):
        # custom steps are relative to the window start, not the clock
        return True
    if rule == SchedulingRule.FIXED_INTERVAL:
        align = align if align in ALIGNMENTS else QUARTER_HOUR
        return timezone.localtime(_to_utc(slot_start)).minute % align == 0
    return False


def next_valid_slot_time(
    from_time: datetime, rule: str, interval: Optional[int] = None, align: Optional[int] = None
) -> datetime:
    if rule == SchedulingRule.FIXED_INTERVAL:
        return next_aligned_time(from_time, align if align in ALIGNMENTS else QUARTER_HOUR)
    if rule == SchedulingRule.CUSTOM_INTERVAL and interval:
        local = timezone.localtime(_to_utc(from_time))
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        elapsed = int((local - midnight).total_seconds() // 60)
        return _to_utc(midnight) + timedelta(minutes=math.ceil(elapsed / interval) * interval)
    return from_time


def calculate_schedule_efficiency(
    window_minutes: int,
    duration: int,
    rule: str,
    interval: Optional[int] = None,
    align: Optional[int] = None,
) -> dict:
    max_possible = window_minutes // duration if duration > 0 else 0
    if rule == SchedulingRule.FIXED_INTERVAL:
        step = align if align in ALIGNMENTS else QUARTER_HOUR
        actual = window_minutes // step
        gap = max(0, step - duration)
    elif rule == SchedulingRule.CUSTOM_INTERVAL:
        step = interval or duration
        actual = window_minutes // step if step else 0
        gap = max(0, step - duration)
    else:
        actual, gap = max_possible, 0

    return {
        "max_possible_slots": max_possible,
        "actual_slots": actual,
        "utilization_rate": (actual / max_possible) if max_possible else 0.0,
        "average_gap_minutes": gap,
    }
