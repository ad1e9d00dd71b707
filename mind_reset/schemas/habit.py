from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from mind_reset.temporal import is_same_day

from .base import DocumentModel

WEEKLY_STREAK_DAYS = 7
MONTHLY_STREAK_DAYS = 30
YEARLY_STREAK_DAYS = 365


class MetricCategory(str, Enum):
    QUANTITY = "quantity"
    TIME = "time"
    COMPLETION = "completion"


# Predefined metric names offered for each category.
DISTANCE_MILES = "Distance (miles)"
PAGES_READ = "Pages Read"
ENTRIES_WRITTEN = "Entries Written"
MINUTES = "Minutes"
COMPLETED = "Completed"


class MetricType(BaseModel):
    kind: Literal["predefined", "custom"] = "predefined"
    name: str

    @classmethod
    def predefined(cls, name: str) -> "MetricType":
        return cls(kind="predefined", name=name)

    @classmethod
    def custom(cls, name: str) -> "MetricType":
        return cls(kind="custom", name=name)


class HabitRecord(BaseModel):
    date: dt.datetime
    value: float | None = None


class Habit(DocumentModel):
    id: str | None = None
    owner_id: str = Field(alias="ownerId")

    title: str
    description: str = ""
    goal: str = ""
    start_date: dt.datetime = Field(alias="startDate")

    metric_category: MetricCategory = Field(default=MetricCategory.COMPLETION, alias="metricCategory")
    metric_type: MetricType = Field(default_factory=lambda: MetricType.predefined(COMPLETED), alias="metricType")

    # Sparse: a missing day means "not done".
    daily_records: list[HabitRecord] = Field(default_factory=list, alias="dailyRecords")

    current_streak: int = Field(default=0, ge=0, alias="currentStreak")
    longest_streak: int = Field(default=0, ge=0, alias="longestStreak")
    last_reset: dt.datetime | None = Field(default=None, alias="lastReset")

    # Running tally of points earned through this habit; the user ledger is authoritative.
    points: int = 0

    # Badges derive from the streak and are never stored.
    @property
    def weekly_streak_badge(self) -> bool:
        return self.current_streak >= WEEKLY_STREAK_DAYS

    @property
    def monthly_streak_badge(self) -> bool:
        return self.current_streak >= MONTHLY_STREAK_DAYS

    @property
    def yearly_streak_badge(self) -> bool:
        return self.current_streak >= YEARLY_STREAK_DAYS

    def records_on(self, day: dt.date | dt.datetime) -> list[HabitRecord]:
        return [r for r in self.daily_records if is_same_day(r.date, day)]

    def record_value_on(self, day: dt.date | dt.datetime) -> float | None:
        """Value of the first record on ``day``; None when the day has no record."""
        for record in self.daily_records:
            if is_same_day(record.date, day):
                return record.value or 0.0
        return None

    def is_completed_on(self, day: dt.date | dt.datetime) -> bool:
        return any((r.value or 0) > 0 for r in self.records_on(day))

    def latest_record(self) -> HabitRecord | None:
        if not self.daily_records:
            return None
        return max(self.daily_records, key=lambda r: r.date)


class UserNote(DocumentModel):
    id: str | None = None
    habit_id: str = Field(alias="habitID")
    note_text: str = Field(alias="noteText")
    timestamp: dt.datetime
