from datetime import date, datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

import pytest
from django.test import override_settings
from django.utils import timezone

from apps.availability.recurrence import (
    RecurrenceOption,
    create_recurrence_pattern,
    day_of_week,
    describe_recurrence,
    generate_recurring_instances,
    is_valid_recurrence_pattern,
)

UTC = dt_timezone.utc
# Monday 2 March 2026, 09:00-10:00
MON_START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
MON_END = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def test_days_are_numbered_from_sunday():
    assert day_of_week(date(2026, 3, 1)) == 0  # Sunday
    assert day_of_week(date(2026, 3, 2)) == 1
    assert day_of_week(date(2026, 3, 7)) == 6


def test_weekly_pattern_takes_the_start_weekday():
    p = create_recurrence_pattern(RecurrenceOption.WEEKLY, MON_START, end_date=date(2026, 3, 23))
    assert p == {"option": "WEEKLY", "end_date": "2026-03-23", "weekly_day": 1}
    assert is_valid_recurrence_pattern(p)


@override_settings(RECURRENCE_DEFAULT_WEEKS=4)
def test_missing_end_date_defaults_to_four_weeks():
    p = create_recurrence_pattern(RecurrenceOption.DAILY, MON_START)
    assert p["end_date"] == "2026-03-30"


def test_invalid_patterns():
    assert not is_valid_recurrence_pattern(None)
    assert not is_valid_recurrence_pattern({"option": "CUSTOM", "custom_days": []})
    assert not is_valid_recurrence_pattern({"option": "WEEKLY", "weekly_day": 7})
    assert not is_valid_recurrence_pattern({"option": "YEARLY"})


def test_descriptions():
    assert describe_recurrence(None) == "Does not repeat"
    assert describe_recurrence({"option": "DAILY", "end_date": "2026-03-05"}) == "Daily until Mar 5, 2026"
    assert describe_recurrence({"option": "WEEKLY", "weekly_day": 2}) == "Weekly on Tuesday"
    assert (
        describe_recurrence({"option": "CUSTOM", "custom_days": [3, 1], "end_date": "2026-03-03"})
        == "Weekly on M, W until Mar 3, 2026"
    )


def test_daily_instances_include_the_end_date():
    pattern = {"option": "DAILY", "end_date": "2026-03-05"}
    got = generate_recurring_instances(pattern, MON_START, MON_END)
    assert [s.day for s, _ in got] == [2, 3, 4, 5]
    assert all(e - s == MON_END - MON_START for s, e in got)


def test_weekly_instances():
    pattern = {"option": "WEEKLY", "weekly_day": 1, "end_date": "2026-03-23"}
    got = generate_recurring_instances(pattern, MON_START, MON_END)
    assert [s.date() for s, _ in got] == [
        date(2026, 3, 2), date(2026, 3, 9), date(2026, 3, 16), date(2026, 3, 23)
    ]


def test_custom_days_wrap_into_next_week():
    pattern = {"option": "CUSTOM", "custom_days": [1, 3], "end_date": "2026-03-11"}
    got = generate_recurring_instances(pattern, MON_START, MON_END)
    assert [s.day for s, _ in got] == [2, 4, 9, 11]


def test_max_instances_caps_the_series():
    pattern = {"option": "DAILY", "end_date": "2026-12-31"}
    assert len(generate_recurring_instances(pattern, MON_START, MON_END, max_instances=3)) == 3


def test_non_recurring_returns_the_original_window():
    assert generate_recurring_instances({"option": "NONE"}, MON_START, MON_END) == [(MON_START, MON_END)]


def test_wall_clock_time_survives_dst_change():
    london = ZoneInfo("Europe/London")
    start = datetime(2026, 3, 28, 9, 0, tzinfo=london)
    end = datetime(2026, 3, 28, 10, 0, tzinfo=london)
    with timezone.override(london):
        got = generate_recurring_instances({"option": "DAILY", "end_date": "2026-03-30"}, start, end)
    local_hours = [s.astimezone(london).hour for s, _ in got]
    utc_hours = [s.astimezone(UTC).hour for s, _ in got]
    assert local_hours == [9, 9, 9]
    # clocks go forward on 29 March
    assert utc_hours == [9, 8, 8]
