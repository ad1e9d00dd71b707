from __future__ import annotations

import datetime as dt
from pydantic import BaseModel, Field

from .habit import Habit, MetricCategory, MetricType


class UserCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=120)
    created_at: dt.datetime | None = None


class UserOut(BaseModel):
    user_id: str
    created_at: dt.datetime
    total_points: int = 0
    default_wake_up_time: str | None = None
    default_sleep_time: str | None = None


class ScheduleTimesIn(BaseModel):
    wake: dt.time | None = None
    sleep: dt.time | None = None


class PriorityIn(BaseModel):
    title: str = Field(default="", max_length=200)


class PriorityPatch(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    progress: float | None = Field(default=None, ge=0.0, le=1.0)


class TimeBlockPatch(BaseModel):
    time: str | None = Field(default=None, max_length=20)
    task: str | None = Field(default=None, max_length=500)


class HabitCreate(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=500)
    goal: str = Field(default="", max_length=300)
    metric_category: MetricCategory = MetricCategory.COMPLETION
    metric_type: MetricType | None = None


class HabitPatch(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    goal: str | None = Field(default=None, max_length=300)


class ToggleIn(BaseModel):
    value: float | None = Field(default=None, ge=0)


class ValueIn(BaseModel):
    value: float = Field(ge=0)


class ToggleOut(BaseModel):
    habit: Habit
    completed: bool
    points_awarded: int


class NoteIn(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class SeriesPointOut(BaseModel):
    label: str
    date: dt.date
    value: float | None

    class Config:
        from_attributes = True


class SeriesOut(BaseModel):
    points: list[SeriesPointOut]
    average: float


class PeriodOut(BaseModel):
    start: dt.date
    end: dt.date
    label: str
    offset: int

    class Config:
        from_attributes = True
