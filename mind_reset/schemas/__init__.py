from .habit import Habit, HabitRecord, MetricCategory, MetricType, UserNote
from .schedule import DaySchedule, TimeBlock, TodayPriority

__all__ = [
    "DaySchedule",
    "TimeBlock",
    "TodayPriority",
    "Habit",
    "HabitRecord",
    "MetricCategory",
    "MetricType",
    "UserNote",
]
