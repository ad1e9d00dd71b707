from __future__ import annotations

import datetime as dt
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import APIRouter, Depends

from mind_reset.api.deps import get_auth_session, get_clock, get_document_store, get_entity_locks, raise_for_errors, require_api_key
from mind_reset.schemas.api import PriorityIn, PriorityPatch, ScheduleTimesIn, TimeBlockPatch
from mind_reset.schemas.schedule import DaySchedule
from mind_reset.services.schedules import ScheduleStore
from mind_reset.session import StaticAuthSession
from mind_reset.store import DocumentStore, KeyedLock

router = APIRouter(prefix="/schedules", tags=["schedules"], dependencies=[Depends(require_api_key)])


@asynccontextmanager
async def _opened(
    day: dt.date,
    store: DocumentStore,
    clock: Callable[[], dt.datetime],
    session: StaticAuthSession,
    locks: KeyedLock,
) -> AsyncIterator[tuple[ScheduleStore, DaySchedule]]:
    schedules = ScheduleStore(store, clock=clock, locks=locks)
    try:
        schedule = await schedules.load_or_create(day, session.user_id)
        if schedule is None:
            raise_for_errors(schedules.errors)
        yield schedules, schedule
    finally:
        schedules.close()


def _result(schedules: ScheduleStore, ok: bool) -> DaySchedule:
    if not ok or schedules.schedule is None:
        raise_for_errors(schedules.errors)
    return schedules.schedule


@router.get("/today", response_model=DaySchedule)
async def get_today(
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(clock().date(), store, clock, session, locks) as (_, schedule):
        return schedule


@router.get("/{day}", response_model=DaySchedule)
async def get_day(
    day: dt.date,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (_, schedule):
        return schedule


@router.put("/{day}/times", response_model=DaySchedule)
async def set_times(
    day: dt.date,
    payload: ScheduleTimesIn,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (schedules, schedule):
        ok = await schedules.set_times(schedule, wake=payload.wake, sleep=payload.sleep)
    return _result(schedules, ok)


@router.post("/{day}/priorities", response_model=DaySchedule)
async def add_priority(
    day: dt.date,
    payload: PriorityIn,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (schedules, schedule):
        ok = await schedules.add_priority(schedule, payload.title)
    return _result(schedules, ok)


@router.patch("/{day}/priorities/{priority_id}", response_model=DaySchedule)
async def update_priority(
    day: dt.date,
    priority_id: str,
    payload: PriorityPatch,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (schedules, schedule):
        ok = await schedules.update_priority(schedule, priority_id, title=payload.title, progress=payload.progress)
    return _result(schedules, ok)


@router.delete("/{day}/priorities/{priority_id}", response_model=DaySchedule)
async def remove_priority(
    day: dt.date,
    priority_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (schedules, schedule):
        ok = await schedules.remove_priority(schedule, priority_id)
    return _result(schedules, ok)


@router.patch("/{day}/blocks/{block_id}", response_model=DaySchedule)
async def update_time_block(
    day: dt.date,
    block_id: str,
    payload: TimeBlockPatch,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with _opened(day, store, clock, session, locks) as (schedules, schedule):
        ok = await schedules.update_time_block(schedule, block_id, time=payload.time, task=payload.task)
    return _result(schedules, ok)


@router.post("/{day}/copy-previous", response_model=DaySchedule)
async def copy_previous(
    day: dt.date,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    copier = ScheduleStore(store, clock=clock, locks=locks)
    if not await copier.copy_previous(day, session.user_id):
        raise_for_errors(copier.errors)
    async with _opened(day, store, clock, session, locks) as (_, schedule):
        return schedule
