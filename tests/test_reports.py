import datetime as dt

import pytest

from mind_reset.errors import ValidationError
from mind_reset.schemas.habit import Habit, HabitRecord
from mind_reset.services import reports

from conftest import NOW


def _habit(records, start=dt.datetime(2026, 10, 1, 12, 0)) -> Habit:
    return Habit(
        id="h1",
        owner_id="u1",
        title="Walk",
        start_date=start,
        daily_records=[HabitRecord(date=d, value=v) for d, v in records],
    )


def test_week_series_nulls_outside_reachable_days():
    habit = _habit([(dt.datetime(2026, 10, 20, 7, 0), 2.5)])
    created = dt.datetime(2026, 10, 19, 23, 0)

    points = reports.week_series(habit, 0, created, NOW)

    assert [p.label for p in points] == ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
    assert [p.value for p in points] == [None, 0.0, 2.5, 0.0, None, None, None]
    assert reports.average_completion(points) == pytest.approx(2.5 / 3)


def test_week_series_previous_week():
    habit = _habit([(dt.datetime(2026, 10, 13, 7, 0), 1)])
    points = reports.week_series(habit, -1, dt.datetime(2026, 9, 1), NOW)
    assert points[0].date == dt.date(2026, 10, 11)
    assert points[2].value == 1
    assert all(p.value is not None for p in points)


def test_first_record_of_day_wins():
    day = dt.datetime(2026, 10, 20)
    habit = _habit([(day.replace(hour=7), 3), (day.replace(hour=9), 5)])
    points = reports.week_series(habit, 0, dt.datetime(2026, 9, 1), NOW)
    assert points[2].value == 3


def test_month_grid():
    habit = _habit([(dt.datetime(2026, 10, 2, 8, 0), 1)])
    points = reports.month_grid(habit, 0, dt.datetime(2026, 10, 2, 18, 0), NOW)

    assert len(points) == 31
    assert points[0].label == "1"
    assert points[0].value is None
    assert points[1].value == 1
    assert points[20].value == 0.0
    assert points[21].value is None


def test_custom_range_never_null():
    habit = _habit([(dt.datetime(2026, 10, 3, 8, 0), 4)])
    points = reports.custom_range_series(habit, dt.date(2026, 10, 1), dt.date(2026, 10, 4), NOW)
    assert [p.label for p in points] == ["Oct 1", "Oct 2", "Oct 3", "Oct 4"]
    assert [p.value for p in points] == [0.0, 0.0, 4, 0.0]


@pytest.mark.parametrize(
    "start,end",
    [
        (dt.date(2026, 9, 30), dt.date(2026, 10, 4)),
        (dt.date(2026, 10, 1), dt.date(2026, 10, 22)),
        (dt.date(2026, 10, 5), dt.date(2026, 10, 4)),
    ],
)
def test_custom_range_rejected(start, end):
    with pytest.raises(ValidationError):
        reports.custom_range_series(_habit([]), start, end, NOW)


def test_average_completion_empty():
    assert reports.average_completion([]) == 0.0
    assert reports.average_completion([None, None]) == 0.0
    assert reports.average_completion([1, None, 0]) == 0.5


def test_offset_bounds():
    created = dt.datetime(2026, 9, 3)
    assert reports.min_week_offset(created, NOW) == -7
    assert reports.clamp_week_offset(-20, created, NOW) == -7
    assert reports.clamp_week_offset(3, created, NOW) == 0
    assert reports.min_month_offset(created, NOW) == -1
    assert reports.clamp_month_offset(-5, created, NOW) == -1


def test_navigable_periods():
    created = dt.datetime(2026, 9, 3)
    weeks = reports.navigable_weeks(created, NOW)
    months = reports.navigable_months(created, NOW)

    assert len(weeks) == 8
    assert weeks[0].label == "Oct 18 - Oct 24"
    assert weeks[-1].start == dt.date(2026, 8, 30)
    assert [m.label for m in months] == ["October 2026", "September 2026"]
