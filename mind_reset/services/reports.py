"""mind_reset/services/reports.py

Per-day series for a habit: week bars, month grid and custom ranges.

A day before the account was created, or after today, has no value (None);
it is not a zero. Offsets count whole weeks/months back from the current one
(0 = current, -1 = previous) and are clamped to the account's lifetime.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from mind_reset.errors import ValidationError
from mind_reset.i18n import t_list
from mind_reset.schemas.habit import Habit
from mind_reset.temporal import (
    as_date,
    add_months,
    iter_days,
    month_days,
    month_label,
    months_between,
    now_local,
    short_date_label,
    start_of_month,
    start_of_week,
    week_days,
    week_interval_label,
    weeks_between,
)


@dataclass(frozen=True)
class SeriesPoint:
    label: str
    date: dt.date
    value: float | None


@dataclass(frozen=True)
class Period:
    start: dt.date
    end: dt.date
    label: str
    offset: int


def _reachable(day: dt.date, account_created: dt.date | dt.datetime, today: dt.date) -> bool:
    return as_date(account_created) <= day <= today


def _value_for(habit: Habit, day: dt.date, account_created, today: dt.date) -> float | None:
    if not _reachable(day, account_created, today):
        return None
    value = habit.record_value_on(day)
    return value if value is not None else 0.0


def min_week_offset(account_created: dt.date | dt.datetime, now: dt.datetime | None = None) -> int:
    now = now or now_local()
    return -max(weeks_between(account_created, now), 0)


def min_month_offset(account_created: dt.date | dt.datetime, now: dt.datetime | None = None) -> int:
    now = now or now_local()
    return -max(months_between(account_created, now), 0)


def clamp_week_offset(offset: int, account_created, now: dt.datetime | None = None) -> int:
    return max(min_week_offset(account_created, now), min(offset, 0))


def clamp_month_offset(offset: int, account_created, now: dt.datetime | None = None) -> int:
    return max(min_month_offset(account_created, now), min(offset, 0))


def week_series(
    habit: Habit,
    week_offset: int,
    account_created: dt.date | dt.datetime,
    now: dt.datetime | None = None,
    locale: str = "en",
) -> list[SeriesPoint]:
    now = now or now_local()
    today = now.date()
    start = start_of_week(now) + dt.timedelta(weeks=week_offset)
    labels = t_list("week.day_labels", locale)
    return [
        SeriesPoint(labels[i], day.date(), _value_for(habit, day.date(), account_created, today))
        for i, day in enumerate(week_days(start))
    ]


def month_grid(
    habit: Habit,
    month_offset: int,
    account_created: dt.date | dt.datetime,
    now: dt.datetime | None = None,
) -> list[SeriesPoint]:
    now = now or now_local()
    today = now.date()
    target = add_months(start_of_month(now), month_offset)
    return [
        SeriesPoint(str(day.day), day.date(), _value_for(habit, day.date(), account_created, today))
        for day in month_days(target)
    ]


def custom_range_series(
    habit: Habit,
    start: dt.date | dt.datetime,
    end: dt.date | dt.datetime,
    now: dt.datetime | None = None,
) -> list[SeriesPoint]:
    """Every day from ``start`` to ``end`` inclusive; missing days count as 0."""
    now = now or now_local()
    first, last = as_date(start), as_date(end)
    if first < habit.start_date.date():
        raise ValidationError(f"range starts before the habit ({habit.start_date.date()})")
    if last > now.date():
        raise ValidationError("range ends in the future")
    if first > last:
        raise ValidationError("range start is after its end")
    points = []
    for day in iter_days(first, last):
        value = habit.record_value_on(day)
        points.append(SeriesPoint(short_date_label(day), day.date(), value if value is not None else 0.0))
    return points


def average_completion(values) -> float:
    present = [v.value if isinstance(v, SeriesPoint) else v for v in values]
    present = [v for v in present if v is not None]
    if not present:
        return 0.0
    return sum(present) / len(present)


def navigable_weeks(account_created: dt.date | dt.datetime, now: dt.datetime | None = None) -> list[Period]:
    """Weeks from the current one back to the week of account creation."""
    now = now or now_local()
    current = start_of_week(now)
    periods = []
    for offset in range(0, min_week_offset(account_created, now) - 1, -1):
        start = current + dt.timedelta(weeks=offset)
        end = start + dt.timedelta(days=6)
        periods.append(Period(start.date(), end.date(), week_interval_label(start, end), offset))
    return periods


def navigable_months(account_created: dt.date | dt.datetime, now: dt.datetime | None = None) -> list[Period]:
    now = now or now_local()
    current = start_of_month(now)
    periods = []
    for offset in range(0, min_month_offset(account_created, now) - 1, -1):
        days = month_days(add_months(current, offset))
        periods.append(Period(days[0].date(), days[-1].date(), month_label(days[0]), offset))
    return periods
