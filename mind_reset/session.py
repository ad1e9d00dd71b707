from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Protocol

from mind_reset.errors import DecodeError, NotFound
from mind_reset.store import DocumentStore, user_path


class AuthSession(Protocol):
    def current_user_id(self) -> str | None: ...

    def account_created_at(self) -> dt.datetime: ...


@dataclass(frozen=True)
class StaticAuthSession:
    user_id: str | None
    created_at: dt.datetime

    def current_user_id(self) -> str | None:
        return self.user_id

    def account_created_at(self) -> dt.datetime:
        return self.created_at


async def load_auth_session(store: DocumentStore, user_id: str) -> StaticAuthSession:
    data = await store.get(user_path(user_id))
    if data is None:
        raise NotFound(f"user {user_id}")
    raw = data.get("createdAt")
    try:
        created_at = dt.datetime.fromisoformat(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"user {user_id} createdAt") from exc
    return StaticAuthSession(user_id=user_id, created_at=created_at.replace(tzinfo=None))
