import asyncio
import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mind_reset.api.deps import get_clock, get_document_store, get_entity_locks
from mind_reset.errors import StoreError, StoreWriteError
from mind_reset.main import create_app
from mind_reset.models import Base
from mind_reset.session import StaticAuthSession
from mind_reset.settings import settings
from mind_reset.store import KeyedLock, SqlDocumentStore, user_path

# Wednesday; the week runs Sun 2026-10-18 .. Sat 2026-10-24
NOW = dt.datetime(2026, 10, 21, 9, 30)
ACCOUNT_CREATED = dt.datetime(2026, 9, 3, 20, 15)


class FakeClock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)


class FlakyStore(SqlDocumentStore):
    """SqlDocumentStore whose reads or writes can be switched to fail."""

    fail_reads = False
    fail_writes = False

    def _read(self, path):
        if self.fail_reads:
            raise StoreError(f"get {path}")
        return super()._read(path)

    def _run_query(self, spec):
        if self.fail_reads:
            raise StoreError(f"query {spec.collection}")
        return super()._run_query(spec)

    def _write(self, path, mutate):
        if self.fail_writes:
            raise StoreWriteError(f"write {path}")
        return super()._write(path, mutate)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def store(session_factory):
    return FlakyStore(session_factory)


@pytest.fixture()
def clock():
    return FakeClock(NOW)


@pytest.fixture()
def user(store):
    asyncio.run(store.set(user_path("u1"), {"createdAt": ACCOUNT_CREATED.isoformat(), "totalPoints": 0}))
    return StaticAuthSession(user_id="u1", created_at=ACCOUNT_CREATED)


@pytest.fixture()
def test_app(store, clock, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", None)
    app = create_app()
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    locks = KeyedLock()
    app.dependency_overrides[get_entity_locks] = lambda: locks
    return app


@pytest.fixture()
def client(test_app):
    return TestClient(test_app)
