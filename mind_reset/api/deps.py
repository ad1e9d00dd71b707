import datetime as dt
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Header, HTTPException

from mind_reset.db import SessionLocal
from mind_reset.errors import DecodeError, ErrorChannel, NotFound, StoreError, ValidationError
from mind_reset.session import StaticAuthSession, load_auth_session
from mind_reset.settings import settings
from mind_reset.store import DocumentStore, KeyedLock, SqlDocumentStore
from mind_reset.temporal import now_local


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    return SqlDocumentStore(SessionLocal)


@lru_cache(maxsize=1)
def get_entity_locks() -> KeyedLock:
    """Per-document locks shared by every request of the process."""
    return KeyedLock()


def get_clock() -> Callable[[], dt.datetime]:
    return now_local


async def get_auth_session(
    store: DocumentStore = Depends(get_document_store),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> StaticAuthSession:
    user_id = x_user_id.strip() if x_user_id else None
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user id")
    try:
        return await load_auth_session(store, user_id)
    except NotFound:
        raise HTTPException(status_code=401, detail="Unknown user")
    except DecodeError:
        raise HTTPException(status_code=500, detail="User record is unreadable")
    except StoreError:
        raise HTTPException(status_code=503, detail="Storage unavailable")


def raise_for_errors(errors: ErrorChannel) -> None:
    """Turn the last failure a store published into an HTTP error."""
    err = errors.last
    if err is None:
        raise HTTPException(status_code=500, detail="Request failed")
    if isinstance(err, NotFound):
        status = 404
    elif isinstance(err, ValidationError):
        status = 422
    elif isinstance(err, DecodeError):
        status = 500
    else:
        status = 503
    raise HTTPException(status_code=status, detail=err.user_message(errors.locale))
