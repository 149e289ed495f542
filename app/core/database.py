"""
Async database engine and session management.

One AsyncSession per request: committed when the handler returns,
rolled back when it raises.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Callable

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session

from app.core.config import settings

logger = logging.getLogger(__name__)

# SQLite has no connection pool sizing
if settings.DATABASE_URL.startswith("sqlite"):
    async_engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        connect_args={"check_same_thread": False},
    )
else:
    async_engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    The session is the transaction boundary of the request.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Post-commit hooks
# ---------------------------------------------------------------------------

AFTER_COMMIT_KEY = "after_commit_callbacks"


def _run_after_commit(session: Session) -> None:
    callbacks = list(session.info.get(AFTER_COMMIT_KEY, ()))
    session.info[AFTER_COMMIT_KEY] = []
    for callback in callbacks:
        callback()


def _discard_after_commit(session: Session) -> None:
    session.info[AFTER_COMMIT_KEY] = []


def run_after_commit(session: AsyncSession, callback: Callable[[], None]) -> None:
    """
    Defer callback until the session's transaction commits.

    Used for broker side effects (emails, notifications) so workers never
    see rows that are later rolled back. A rollback drops the callbacks.
    """
    sync_session = session.sync_session
    if AFTER_COMMIT_KEY not in sync_session.info:
        sync_session.info[AFTER_COMMIT_KEY] = []
        event.listen(sync_session, "after_commit", _run_after_commit)
        event.listen(sync_session, "after_rollback", _discard_after_commit)
    sync_session.info[AFTER_COMMIT_KEY].append(callback)


async def check_db_connection() -> bool:
    """Return True if a trivial query succeeds."""
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database connection check failed: %s", exc)
        return False
