"""mind_reset/temporal.py

Calendar helpers shared by the schedule store, the habit store and reports.

All values are naive local datetimes (wall clock of ``settings.TZ``). Weeks
start on Sunday.
"""

from __future__ import annotations

import calendar
import datetime as dt
from typing import Iterator
from zoneinfo import ZoneInfo

from mind_reset.settings import settings

DAY_KEY_FORMAT = "%Y-%m-%d"


def now_local() -> dt.datetime:
    return dt.datetime.now(ZoneInfo(settings.TZ)).replace(tzinfo=None, microsecond=0)


def as_date(value: dt.date | dt.datetime) -> dt.date:
    return value.date() if isinstance(value, dt.datetime) else value


def start_of_day(value: dt.date | dt.datetime) -> dt.datetime:
    return dt.datetime.combine(as_date(value), dt.time.min)


def day_key(value: dt.date | dt.datetime) -> str:
    return as_date(value).strftime(DAY_KEY_FORMAT)


def parse_day_key(key: str) -> dt.datetime:
    return dt.datetime.strptime(key.strip(), DAY_KEY_FORMAT)


def is_same_day(a: dt.date | dt.datetime, b: dt.date | dt.datetime) -> bool:
    return as_date(a) == as_date(b)


def parse_hhmm(s: str) -> dt.time:
    s = s.strip()
    hh, mm = s.split(":")
    return dt.time(int(hh), int(mm))


def format_hhmm(value: dt.time | dt.datetime) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def at_time(day: dt.date | dt.datetime, hour: int, minute: int = 0) -> dt.datetime:
    return start_of_day(day).replace(hour=hour, minute=minute)


def anchor_time(day: dt.date | dt.datetime, value: dt.time | dt.datetime) -> dt.datetime:
    """Place the time-of-day of ``value`` on ``day``."""
    return at_time(day, value.hour, value.minute)


def start_of_week(value: dt.date | dt.datetime) -> dt.datetime:
    day = start_of_day(value)
    # Monday=0 .. Sunday=6; shift so Sunday starts the week
    distance_from_sunday = (day.weekday() + 1) % 7
    return day - dt.timedelta(days=distance_from_sunday)


def week_days(start: dt.date | dt.datetime) -> list[dt.datetime]:
    first = start_of_day(start)
    return [first + dt.timedelta(days=i) for i in range(7)]


def start_of_month(value: dt.date | dt.datetime) -> dt.datetime:
    return start_of_day(as_date(value).replace(day=1))


def add_months(value: dt.date | dt.datetime, months: int) -> dt.datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    base = as_date(value)
    index = base.year * 12 + (base.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return start_of_day(dt.date(year, month, day))


def days_in_month(value: dt.date | dt.datetime) -> int:
    d = as_date(value)
    return calendar.monthrange(d.year, d.month)[1]


def month_days(value: dt.date | dt.datetime) -> list[dt.datetime]:
    first = start_of_month(value)
    return [first + dt.timedelta(days=i) for i in range(days_in_month(first))]


def iter_days(start: dt.date | dt.datetime, end: dt.date | dt.datetime) -> Iterator[dt.datetime]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    current = start_of_day(start)
    last = start_of_day(end)
    while current <= last:
        yield current
        current += dt.timedelta(days=1)


def weeks_between(a: dt.date | dt.datetime, b: dt.date | dt.datetime) -> int:
    return (start_of_week(b) - start_of_week(a)).days // 7


def months_between(a: dt.date | dt.datetime, b: dt.date | dt.datetime) -> int:
    da, db = as_date(a), as_date(b)
    return (db.year - da.year) * 12 + (db.month - da.month)


def hour_label(value: dt.datetime | dt.time) -> str:
    """Format as ``h:mm AM``, e.g. ``7:00 AM`` or ``12:30 PM``."""
    hour12 = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour12}:{value.minute:02d} {suffix}"


def hour_labels(wake: dt.datetime, sleep: dt.datetime) -> list[str]:
    """Labels for one block per hour from ``wake`` while the time is <= ``sleep``."""
    labels: list[str] = []
    current = wake
    while current <= sleep:
        labels.append(hour_label(current))
        current += dt.timedelta(hours=1)
    return labels


def short_date_label(value: dt.date | dt.datetime) -> str:
    d = as_date(value)
    return f"{d.strftime('%b')} {d.day}"


def month_label(value: dt.date | dt.datetime) -> str:
    return as_date(value).strftime("%B %Y")


def week_interval_label(start: dt.date | dt.datetime, end: dt.date | dt.datetime) -> str:
    return f"{short_date_label(start)} - {short_date_label(end)}"
