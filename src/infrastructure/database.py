"""
Async SQLAlchemy engine, session factory and unit of work.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.
Each request runs inside one ``unit_of_work``: a single session and
transaction that commits on success and rolls back on any exception.
Locks taken while the unit of work is open are released only after that
commit or rollback.  Callbacks registered with ``on_rollback`` undo side
effects outside the database when the transaction is rolled back.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

# SQLite (tests, local runs) uses a static pool that takes no sizing options.
_pool_options = (
    {} if settings.database_url.startswith("sqlite") else {"pool_size": 20, "max_overflow": 10}
)

engine = create_async_engine(settings.database_url, echo=False, **_pool_options)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

LOCK_STACK_KEY = "unit_of_work_locks"
HELD_LOCKS_KEY = "unit_of_work_held"
ROLLBACK_CALLBACKS_KEY = "unit_of_work_on_rollback"


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker = async_session_factory,
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        async with AsyncExitStack() as locks:
            session.info[LOCK_STACK_KEY] = locks
            session.info[HELD_LOCKS_KEY] = set()
            session.info[ROLLBACK_CALLBACKS_KEY] = []
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                for callback in session.info[ROLLBACK_CALLBACKS_KEY]:
                    await callback()
                raise


async def hold_until_end_of_transaction(session: AsyncSession, lock) -> None:
    """Acquire *lock* and keep it until the unit of work commits or rolls back.

    Re-acquiring a key already held by the same unit of work is a no-op.
    """
    stack = session.info.get(LOCK_STACK_KEY)
    if stack is None:
        raise RuntimeError("Keyed locks can only be held inside a unit of work")
    held = session.info[HELD_LOCKS_KEY]
    if lock.key in held:
        return
    await stack.enter_async_context(lock)
    held.add(lock.key)


def on_rollback(session: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """Run *callback* if the unit of work rolls back (e.g. to undo file writes)."""
    callbacks = session.info.get(ROLLBACK_CALLBACKS_KEY)
    if callbacks is None:
        raise RuntimeError("Rollback callbacks can only be registered inside a unit of work")
    callbacks.append(callback)
