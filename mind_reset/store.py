"""mind_reset/store.py

Document store capability consumed by the schedule and habit stores.

Documents are JSON objects addressed by slash paths made of
collection/document pairs (``users/u1/daySchedules/2026-10-18``). The store
offers read-your-writes within a process and pushes every committed change to
live subscriptions on the path or on the containing collection.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import threading
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from mind_reset.errors import NotFound, StoreError, StoreWriteError
from mind_reset.models.document import Document

logger = logging.getLogger("mind_reset.store")

USERS = "users"
DAY_SCHEDULES = "daySchedules"
HABITS = "habits"
USER_NOTES = "UserNotes"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def day_schedule_path(user_id: str, key: str) -> str:
    return f"{USERS}/{user_id}/{DAY_SCHEDULES}/{key}"


def habit_path(habit_id: str) -> str:
    return f"{HABITS}/{habit_id}"


def note_path(note_id: str) -> str:
    return f"{USER_NOTES}/{note_id}"


def split_path(path: str) -> tuple[str, str]:
    """Return (collection, doc_id) for a document path."""
    parts = path.strip("/").split("/")
    if len(parts) < 2 or len(parts) % 2 or any(not p for p in parts):
        raise ValueError(f"not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


@dataclass(frozen=True)
class Snapshot:
    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None


DocumentListener = Callable[[Snapshot], None]
QueryListener = Callable[[list[Snapshot]], None]
Where = Sequence[tuple[str, Any]]


class Subscription:
    """Handle for a live listener. ``close`` is idempotent."""

    def __init__(self, on_close: Callable[[], None]) -> None:
        self._on_close = on_close
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_close()


class DocumentStore(Protocol):
    async def get(self, path: str) -> dict[str, Any] | None: ...

    async def set(self, path: str, data: dict[str, Any]) -> None: ...

    async def update(self, path: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def query(
        self,
        collection: str,
        where: Where = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Snapshot]: ...

    async def increment(self, path: str, field: str, delta: int) -> int: ...

    async def claim_flag(self, path: str, field: str) -> bool: ...

    async def subscribe(self, path: str, listener: DocumentListener) -> Subscription: ...

    async def subscribe_query(
        self,
        collection: str,
        listener: QueryListener,
        where: Where = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription: ...


@dataclass(frozen=True)
class _QuerySpec:
    collection: str
    where: tuple[tuple[str, Any], ...]
    order_by: str | None
    descending: bool
    listener: QueryListener


class SqlDocumentStore:
    """DocumentStore over the ``documents`` table.

    Writes are serialized through a process lock so ``increment`` and
    ``claim_flag`` are atomic read-modify-write operations. Blocking SQL runs
    in the threadpool; listeners are always called on the event loop.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._doc_listeners: dict[int, tuple[str, DocumentListener]] = {}
        self._query_listeners: dict[int, _QuerySpec] = {}

    # reads

    def _read(self, path: str) -> dict[str, Any] | None:
        try:
            with self._session_factory() as db:
                row = db.get(Document, path)
                return copy.deepcopy(row.data) if row else None
        except SQLAlchemyError as exc:
            logger.error("Store read failed for %s: %s", path, exc)
            raise StoreError(f"get {path}") from exc

    def _run_query(self, spec: _QuerySpec) -> list[Snapshot]:
        stmt = select(Document).where(Document.collection == spec.collection)
        for field, value in spec.where:
            stmt = stmt.where(Document.data[field].as_string() == str(value))
        if spec.order_by:
            key = Document.data[spec.order_by].as_string()
            stmt = stmt.order_by(key.desc() if spec.descending else key.asc(), Document.doc_id.asc())
        else:
            stmt = stmt.order_by(Document.doc_id.asc())
        try:
            with self._session_factory() as db:
                rows = db.execute(stmt).scalars().all()
                return [Snapshot(row.doc_id, copy.deepcopy(row.data)) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("Store query failed for %s: %s", spec.collection, exc)
            raise StoreError(f"query {spec.collection}") from exc

    async def get(self, path: str) -> dict[str, Any] | None:
        split_path(path)
        return await run_in_threadpool(self._read, path)

    async def query(
        self,
        collection: str,
        where: Where = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Snapshot]:
        spec = _QuerySpec(collection, tuple(where), order_by, descending, lambda _: None)
        return await run_in_threadpool(self._run_query, spec)

    # writes

    def _write(self, path: str, mutate: Callable[[dict[str, Any] | None], dict[str, Any] | None]) -> dict[str, Any] | None:
        """Apply ``mutate`` to the current data under the write lock.

        ``mutate`` returns the new data, or None to delete the document.
        Runs in a worker thread; subscribers are notified by the caller.
        """
        collection, doc_id = split_path(path)
        try:
            with self._lock, self._session_factory() as db:
                row = db.get(Document, path)
                current = copy.deepcopy(row.data) if row else None
                new_data = mutate(current)
                if new_data is None:
                    if row is not None:
                        db.delete(row)
                elif row is None:
                    db.add(Document(path=path, collection=collection, doc_id=doc_id, data=new_data))
                else:
                    row.data = new_data
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("Store write failed for %s: %s", path, exc)
            raise StoreWriteError(f"write {path}") from exc
        return new_data

    async def _commit(self, path: str, mutate) -> dict[str, Any] | None:
        new_data = await run_in_threadpool(self._write, path, mutate)
        await self._notify(path)
        return new_data

    async def set(self, path: str, data: dict[str, Any]) -> None:
        payload = copy.deepcopy(data)
        await self._commit(path, lambda _current: payload)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        def _merge(current):
            if current is None:
                raise NotFound(path)
            current.update(copy.deepcopy(fields))
            return current

        await self._commit(path, _merge)

    async def delete(self, path: str) -> None:
        await self._commit(path, lambda _current: None)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    async def increment(self, path: str, field: str, delta: int) -> int:
        def _bump(current):
            if current is None:
                raise NotFound(path)
            current[field] = int(current.get(field) or 0) + delta
            return current

        return int((await self._commit(path, _bump))[field])

    async def claim_flag(self, path: str, field: str) -> bool:
        claimed = False

        def _claim(current):
            nonlocal claimed
            if current is None:
                raise NotFound(path)
            if not current.get(field):
                current[field] = True
                claimed = True
            return current

        await self._commit(path, _claim)
        return claimed

    # subscriptions

    async def _notify(self, path: str) -> None:
        """Push the committed state to listeners; reads run off the loop, delivery on it."""
        collection, doc_id = split_path(path)
        doc_targets = [listener for p, listener in list(self._doc_listeners.values()) if p == path]
        query_targets = [spec for spec in list(self._query_listeners.values()) if spec.collection == collection]
        try:
            if doc_targets:
                snapshot = Snapshot(doc_id, await run_in_threadpool(self._read, path))
                for listener in doc_targets:
                    self._deliver(listener, snapshot)
            for spec in query_targets:
                self._deliver(spec.listener, await run_in_threadpool(self._run_query, spec))
        except StoreError:
            # the write itself committed; listeners catch up on the next change
            logger.warning("Could not notify subscribers of %s", path)

    def _deliver(self, listener: Callable[[Any], None], payload: Any) -> None:
        try:
            listener(payload)
        except Exception:  # noqa: BLE001
            logger.exception("Subscription listener failed")

    async def subscribe(self, path: str, listener: DocumentListener) -> Subscription:
        _, doc_id = split_path(path)
        key = next(self._ids)
        self._doc_listeners[key] = (path, listener)
        subscription = Subscription(lambda: self._doc_listeners.pop(key, None))
        try:
            snapshot = Snapshot(doc_id, await run_in_threadpool(self._read, path))
        except StoreError:
            subscription.close()
            raise
        self._deliver(listener, snapshot)
        return subscription

    async def subscribe_query(
        self,
        collection: str,
        listener: QueryListener,
        where: Where = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        key = next(self._ids)
        spec = _QuerySpec(collection, tuple(where), order_by, descending, listener)
        self._query_listeners[key] = spec
        subscription = Subscription(lambda: self._query_listeners.pop(key, None))
        try:
            snapshots = await run_in_threadpool(self._run_query, spec)
        except StoreError:
            subscription.close()
            raise
        self._deliver(listener, snapshots)
        return subscription

    @property
    def listener_count(self) -> int:
        return len(self._doc_listeners) + len(self._query_listeners)


class KeyedLock:
    """Per-key asyncio mutex; serializes mutations of one entity id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: Counter[str] = Counter()

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] <= 0:
                del self._holders[key]
                self._locks.pop(key, None)
