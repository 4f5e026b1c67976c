"""
Database Connection and Session Management

Provides async SQLAlchemy 2.0 engine, session factory, and dependencies
for database operations.

The pool is bounded (db_pool_size, no overflow), idle connections are
recycled after db_idle_timeout seconds, and opening a connection is capped
at db_connect_timeout seconds. TLS is required in every environment except
a local development database.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from practiceflow.config import settings
from practiceflow.core.errors import ServiceUnavailableError
from practiceflow.models.database import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _connect_args() -> dict:
    """asyncpg connect arguments (timeout + TLS)."""
    args: dict = {"timeout": settings.db_connect_timeout}
    if settings.db_ssl_mode and settings.db_ssl_mode != "disable":
        args["ssl"] = settings.db_ssl_mode
    return args


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=settings.db_idle_timeout,
    pool_timeout=settings.db_connect_timeout,
    pool_pre_ping=True,
    connect_args=_connect_args(),
)

# Create session factory
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session.

    Automatically handles:
    - Session creation
    - Commit on success
    - Rollback on exception
    - Session cleanup

    Usage:
        @router.get("/example")
        async def example(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Client))
            return result.scalars().all()

    Yields:
        AsyncSession: Database session
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside FastAPI.

    Used by the notification log writer (one session per write) and
    anywhere outside the request lifecycle.

    Usage:
        async with get_db_context() as db:
            db.add(entry)

    Yields:
        AsyncSession: Database session
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def run_in_transaction(
    session: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """
    Run ``work`` and commit everything pending on ``session`` as one unit.

    Either every write ``work`` performs is committed, or the session is
    rolled back and none are. Connection-level failures surface as
    ServiceUnavailableError.

    Args:
        session: Session to run on
        work: Coroutine function receiving the session

    Returns:
        Whatever ``work`` returns

    Raises:
        ServiceUnavailableError: If the database cannot be reached
    """
    try:
        result = await work(session)
        await session.commit()
        return result
    except (ConnectionError, OSError) as e:
        await session.rollback()
        logger.error(f"Database unavailable during transaction: {e}")
        raise ServiceUnavailableError("Database unavailable") from e
    except Exception:
        await session.rollback()
        raise


async def init_db() -> None:
    """
    Create all database tables.

    WARNING: This is for development only. In production, use migrations
    to manage schema changes.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """
    Close all database connections.

    Should be called during application shutdown to gracefully close
    all connection pools.
    """
    await engine.dispose()


async def check_db_health() -> bool:
    """
    Check database connectivity for health checks.

    Returns:
        bool: True if database is accessible, False otherwise
    """
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database health check failed: {e}")
        return False
