from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from mind_reset.api.deps import get_auth_session, get_clock, get_document_store, require_api_key
from mind_reset.errors import StoreError
from mind_reset.schemas.api import UserCreate, UserOut
from mind_reset.session import StaticAuthSession
from mind_reset.store import DocumentStore, user_path

logger = logging.getLogger("mind_reset.api.users")

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_api_key)])


def _user_out(user_id: str, data: dict) -> UserOut:
    return UserOut(
        user_id=user_id,
        created_at=dt.datetime.fromisoformat(data["createdAt"]),
        total_points=int(data.get("totalPoints") or 0),
        default_wake_up_time=data.get("defaultWakeUpTime"),
        default_sleep_time=data.get("defaultSleepTime"),
    )


@router.post("", response_model=UserOut, status_code=201)
async def register_user(
    payload: UserCreate,
    store: DocumentStore = Depends(get_document_store),
    clock: Callable[[], dt.datetime] = Depends(get_clock),
):
    path = user_path(payload.user_id)
    try:
        if await store.get(path) is not None:
            raise HTTPException(status_code=409, detail="User already exists")
        created_at = (payload.created_at or clock()).replace(tzinfo=None)
        data = {"createdAt": created_at.isoformat(), "totalPoints": 0}
        await store.set(path, data)
    except StoreError:
        raise HTTPException(status_code=503, detail="Storage unavailable")
    logger.info("Registered user %s", payload.user_id)
    return _user_out(payload.user_id, data)


@router.get("/me", response_model=UserOut)
async def get_me(
    store: DocumentStore = Depends(get_document_store),
    session: StaticAuthSession = Depends(get_auth_session),
):
    try:
        data = await store.get(user_path(session.user_id))
    except StoreError:
        raise HTTPException(status_code=503, detail="Storage unavailable")
    if data is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_out(session.user_id, data)
