from __future__ import annotations

import datetime as dt
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import APIRouter, Depends, HTTPException

from mind_reset.api.deps import get_auth_session, get_clock, get_document_store, get_entity_locks, raise_for_errors, require_api_key
from mind_reset.schemas.api import HabitCreate, HabitPatch, ToggleIn, ToggleOut, ValueIn
from mind_reset.schemas.habit import COMPLETED, Habit, MetricType
from mind_reset.services.habits import HabitStore, ToggleResult, metric_prompt
from mind_reset.session import StaticAuthSession
from mind_reset.store import DocumentStore, KeyedLock

router = APIRouter(prefix="/habits", tags=["habits"], dependencies=[Depends(require_api_key)])


@asynccontextmanager
async def open_habits(
    store: DocumentStore,
    clock: Callable[[], dt.datetime],
    session: StaticAuthSession,
    locks: KeyedLock,
) -> AsyncIterator[HabitStore]:
    habits = HabitStore(store, session, clock=clock, locks=locks)
    try:
        await habits.subscribe(session.user_id)
        if habits.errors.last is not None:
            raise_for_errors(habits.errors)
        yield habits
    finally:
        habits.close()


def owned_habit(habits: HabitStore, habit_id: str) -> Habit:
    habit = habits.get(habit_id)
    if habit is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return habit


def _toggle_out(habits: HabitStore, result: ToggleResult | None) -> ToggleOut:
    if result is None:
        raise_for_errors(habits.errors)
    return ToggleOut(habit=result.habit, completed=result.completed, points_awarded=result.points_awarded)


@router.get("", response_model=list[Habit])
async def list_habits(
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        if not await habits.seed_defaults_if_needed(session.user_id) and habits.errors.last is not None:
            raise_for_errors(habits.errors)
        return list(habits.habits)


@router.post("", response_model=Habit, status_code=201)
async def create_habit(
    payload: HabitCreate,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    habits = HabitStore(store, session, clock=clock, locks=locks)
    habit = Habit(
        owner_id=session.user_id,
        title=payload.title,
        description=payload.description,
        goal=payload.goal,
        start_date=clock(),
        metric_category=payload.metric_category,
        metric_type=payload.metric_type or MetricType.predefined(COMPLETED),
    )
    created = await habits.create(habit)
    if created is None:
        raise_for_errors(habits.errors)
    return created


@router.get("/completed-today")
async def completed_today(
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        return {"count": habits.completed_today_count(), "total": len(habits.habits)}


@router.patch("/{habit_id}", response_model=Habit)
async def update_habit(
    habit_id: str,
    payload: HabitPatch,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
        ok = await habits.update_details(habit, **payload.model_dump(exclude_unset=True))
        if not ok:
            raise_for_errors(habits.errors)
        return habits.get(habit_id)


@router.delete("/{habit_id}")
async def delete_habit(
    habit_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        if not await habits.delete(owned_habit(habits, habit_id)):
            raise_for_errors(habits.errors)
    return {"ok": True}


@router.post("/{habit_id}/toggle", response_model=ToggleOut)
async def toggle_habit(
    habit_id: str,
    payload: ToggleIn,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
        result = await habits.toggle_completion(habit, session.user_id, payload.value)
        return _toggle_out(habits, result)


@router.post("/{habit_id}/records", response_model=ToggleOut)
async def record_value(
    habit_id: str,
    payload: ValueIn,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        habit = owned_habit(habits, habit_id)
        result = await habits.record_value(habit, session.user_id, payload.value)
        return _toggle_out(habits, result)


@router.get("/{habit_id}/prompt")
async def get_prompt(
    habit_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        return {"prompt": metric_prompt(owned_habit(habits, habit_id))}
