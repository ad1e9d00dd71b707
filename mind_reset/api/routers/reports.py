from __future__ import annotations

import datetime as dt
from typing import Callable

from fastapi import APIRouter, Depends, Query

from mind_reset.api.deps import get_auth_session, get_clock, get_document_store, get_entity_locks, require_api_key
from mind_reset.api.routers.habits import open_habits, owned_habit
from mind_reset.schemas.api import PeriodOut, SeriesOut, SeriesPointOut
from mind_reset.services import reports
from mind_reset.session import StaticAuthSession
from mind_reset.store import DocumentStore, KeyedLock

router = APIRouter(prefix="/habits/{habit_id}/reports", tags=["reports"], dependencies=[Depends(require_api_key)])


def _series(points: list[reports.SeriesPoint]) -> SeriesOut:
    return SeriesOut(
        points=[SeriesPointOut.model_validate(p) for p in points],
        average=reports.average_completion(points),
    )


@router.get("/week", response_model=SeriesOut)
async def week(
    habit_id: str,
    offset: int = Query(0, le=0),
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    now = clock()
    created = session.account_created_at()
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
    offset = reports.clamp_week_offset(offset, created, now)
    return _series(reports.week_series(habit, offset, created, now))


@router.get("/month", response_model=SeriesOut)
async def month(
    habit_id: str,
    offset: int = Query(0, le=0),
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    now = clock()
    created = session.account_created_at()
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
    offset = reports.clamp_month_offset(offset, created, now)
    return _series(reports.month_grid(habit, offset, created, now))


@router.get("/range", response_model=SeriesOut)
async def custom_range(
    habit_id: str,
    start: dt.date = Query(...),
    end: dt.date = Query(...),
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
    return _series(reports.custom_range_series(habit, start, end, clock()))


@router.get("/weeks", response_model=list[PeriodOut])
async def weeks(
    habit_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        owned_habit(habits, habit_id)
    return [PeriodOut.model_validate(p) for p in reports.navigable_weeks(session.account_created_at(), clock())]


@router.get("/months", response_model=list[PeriodOut])
async def months(
    habit_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        owned_habit(habits, habit_id)
    return [PeriodOut.model_validate(p) for p in reports.navigable_months(session.account_created_at(), clock())]
