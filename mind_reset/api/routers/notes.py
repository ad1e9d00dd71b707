from __future__ import annotations

import datetime as dt
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from mind_reset.api.deps import get_auth_session, get_clock, get_document_store, get_entity_locks, raise_for_errors, require_api_key
from mind_reset.api.routers.habits import open_habits, owned_habit
from mind_reset.schemas.api import NoteIn
from mind_reset.schemas.habit import UserNote
from mind_reset.session import StaticAuthSession
from mind_reset.store import DocumentStore, KeyedLock

router = APIRouter(prefix="/habits/{habit_id}/notes", tags=["notes"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=list[UserNote])
async def list_notes(
    habit_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        owned_habit(habits, habit_id)
        notes = await habits.list_notes(habit_id)
        if habits.errors.last is not None:
            raise_for_errors(habits.errors)
        return notes


@router.post("", response_model=UserNote, status_code=201)
async def add_note(
    habit_id: str,
    payload: NoteIn,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        owned_habit(habits, habit_id)
        note = await habits.save_note(habit_id, payload.text)
        if note is None:
            raise_for_errors(habits.errors)
        return note


@router.delete("/{note_id}")
async def delete_note(
    habit_id: str,
    note_id: str,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
    session: StaticAuthSession = Depends(get_auth_session),
    locks: KeyedLock = Depends(get_entity_locks),
):
    async with open_habits(store, clock, session, locks) as habits:
        owned_habit(habits, habit_id)
        notes = await habits.list_notes(habit_id)
        note = next((n for n in notes if n.id == note_id), None)
        if note is None:
            raise HTTPException(status_code=404, detail="Note not found")
        if not await habits.delete_note(note):
            raise_for_errors(habits.errors)
    return {"ok": True}
