"""Shared pytest fixtures for Sparkmatch tests."""
import os
import uuid
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet

# Settings are read on first use; the environment must be in place before any
# sparkmatch import.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = Fernet.generate_key().decode()
os.environ["REDIS_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import sparkmatch.models  # noqa: F401  (registers every table on Base.metadata)
from sparkmatch.database import Base
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import Notifier
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.message_service import MessageService
from sparkmatch.services.profile_service import ProfileService
from sparkmatch.services.swipe_service import SwipeService
from sparkmatch.utils.passwords import hash_password

TEST_PASSWORD_HASH = hash_password("open-sesame")


class FrozenClock:
    """Callable clock the services accept in place of ``utcnow``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeConnection:
    """Stands in for a WebSocket; records every frame it is sent."""

    def __init__(self, fail: bool = False):
        self.frames = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise ConnectionError("socket closed")
        self.frames.append(data)

    def events(self):
        return [frame["event"] for frame in self.frames]

    def last(self, event):
        return next(f["data"] for f in reversed(self.frames) if f["event"] == event)


# ── Database ──────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over
    # BEGIN so begin_nested() behaves as on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ── Services ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def connect(notifier):
    """Join a recording connection to a user's room."""
    def _connect(user_id, fail=False):
        connection = FakeConnection(fail=fail)
        notifier.join(user_id, connection)
        return connection
    return _connect


@pytest.fixture
def match_service(notifier, clock):
    return MatchService(notifier=notifier, clock=clock)


@pytest.fixture
def swipe_service(match_service, clock):
    return SwipeService(match_service, clock=clock)


@pytest.fixture
def message_service(match_service, clock):
    return MessageService(match_service, clock=clock)


@pytest.fixture
def profile_service(clock):
    return ProfileService(clock=clock)


# ── Data ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(db_session, clock):
    """Insert an active user; keyword arguments override the defaults."""
    async def _make(**overrides) -> User:
        user_id = overrides.pop("id", uuid.uuid4())
        fields = {
            "id": user_id,
            "email": f"{user_id.hex[:12]}@example.com",
            "password_hash": TEST_PASSWORD_HASH,
            "name": "Alex",
            "age": 28,
            "gender": "female",
            "interested_in": "both",
            "bio": "",
            "photos": [],
            "last_active": clock(),
            "created_at": clock(),
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        return user
    return _make


@pytest_asyncio.fixture
async def matched_pair(db_session, make_user, match_service):
    """Two users with an active match between them."""
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob", gender="male")
    match, _ = await match_service.create_match([alice.id, bob.id], db_session)
    await db_session.commit()
    return alice, bob, match
