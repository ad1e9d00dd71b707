from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from .base import DocumentModel, new_id


class TodayPriority(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = ""
    progress: float = Field(default=0.0, ge=0.0, le=1.0)


class TimeBlock(BaseModel):
    id: str = Field(default_factory=new_id)
    time: str
    task: str = ""


class DaySchedule(DocumentModel):
    # day key ("yyyy-MM-dd"), also the document id
    id: str
    user_id: str = Field(alias="userId")
    date: dt.datetime

    wake_up_time: dt.datetime = Field(alias="wakeUpTime")
    sleep_time: dt.datetime = Field(alias="sleepTime")

    priorities: list[TodayPriority] = Field(default_factory=list)
    time_blocks: list[TimeBlock] = Field(default_factory=list, alias="timeBlocks")
