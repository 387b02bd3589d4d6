"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) and in-process keyed
locks so tests run without Docker / PostgreSQL / Redis.  The environment
is pinned before ``src`` is imported because settings load at import time.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOCK_BACKEND"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMS_API_URL"] = ""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.enums import UserRole
from src.domain.events import RideEventBus
from src.domain.lifecycle import RideStatusMachine
from src.infrastructure.database import Base, unit_of_work
from src.infrastructure.files import FilePlacement
from src.infrastructure.interceptors import SaveInterceptors
from src.infrastructure.locks import LocalLockProvider
from src.infrastructure.models import RideModel, UserModel
from src.infrastructure.repositories import RideRepository, UserRepository
from src.infrastructure.security import issue_token
from src.services.hooks import build_save_interceptors

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class RecordingSmsSender:
    """Keeps every message instead of sending it."""

    def __init__(self):
        self.messages: list[tuple[Optional[str], str]] = []

    async def send(self, mobile, text):
        self.messages.append((mobile, text))


def auth(user: UserModel) -> dict:
    return {"Authorization": f"Bearer {issue_token(user.id)}"}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine():
    """Fresh schema per test, dropped afterwards."""
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def machine() -> RideStatusMachine:
    return RideStatusMachine()


@pytest.fixture
def events() -> RideEventBus:
    return RideEventBus()


@pytest.fixture
def interceptors(machine, events) -> SaveInterceptors:
    return build_save_interceptors(LocalLockProvider(wait_seconds=5), machine, events)


@pytest.fixture
def sms() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work; committed when the test finishes cleanly."""
    async with unit_of_work(session_factory) as session:
        yield session


@pytest.fixture
def create_user(session_factory, interceptors):
    """Persist a user through the repository (hooks included) and return it."""

    async def _create(**fields) -> UserModel:
        fields.setdefault("name", "Test User")
        fields.setdefault("password", "secret")
        fields.setdefault("active", True)
        role = fields.pop("role", UserRole.RIDER)
        async with unit_of_work(session_factory) as session:
            user = UserModel(role=UserRole(role).value, **fields)
            return await UserRepository(session, interceptors).save(user)

    return _create


@pytest.fixture
def create_ride(session_factory, interceptors):
    async def _create(**fields) -> RideModel:
        async with unit_of_work(session_factory) as session:
            return await RideRepository(session, interceptors).save(RideModel(**fields))

    return _create


@pytest_asyncio.fixture
async def client(session_factory, interceptors, sms, tmp_path):
    """AsyncClient over the app with the DB, locks, SMS and uploads swapped out."""
    from src.api.app import create_app
    from src.api.dependencies import (
        get_db,
        get_file_placement,
        get_interceptors,
        get_sms_sender,
    )

    async def _test_db():
        async with unit_of_work(session_factory) as session:
            yield session

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_interceptors] = lambda: interceptors
    app.dependency_overrides[get_sms_sender] = lambda: sms
    app.dependency_overrides[get_file_placement] = lambda: FilePlacement(tmp_path / "uploads")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
