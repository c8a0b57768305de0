"""Database Session Manager — async connection pool with rollback and error mapping per boundary.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - read(source) maps SQLAlchemy failures to FetchError(source)
    - write() maps SQLAlchemy failures to PersistenceError
    - session() maps SQLAlchemy failures to DatabaseError (admin/seed paths)
    - Connection pool uses pool_pre_ping for stale connection detection

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: prevents lazy-load issues in async context
    - SQLite URLs skip pool sizing (aiosqlite uses a static pool)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from enrollment.core.errors import DatabaseError, FetchError, PersistenceError

logger = logging.getLogger(__name__)


def _describe(e: SQLAlchemyError) -> str:
    if isinstance(e, IntegrityError):
        return "Integrity constraint violated"
    if isinstance(e, OperationalError):
        return "Connection or operational error"
    if isinstance(e, DBAPIError):
        return "Database driver error"
    return "Database operation failed"


class DatabaseSessionManager:
    """Manages async database sessions with pooling, rollback, and health checks."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        if database_url.startswith("sqlite"):
            engine = create_async_engine(database_url)
        else:
            engine = create_async_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        self._bind(engine)

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "DatabaseSessionManager":
        manager = cls.__new__(cls)
        manager._bind(engine)
        return manager

    def _bind(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"DB error: {e}")
            raise DatabaseError(_describe(e), "execute") from e
        finally:
            await session.close()

    @asynccontextmanager
    async def read(self, source: str) -> AsyncGenerator[AsyncSession, None]:
        """Session for a collaborator read; failures surface as FetchError."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"DB read of {source} failed: {e}")
            raise FetchError(_describe(e), source) from e
        finally:
            await session.close()

    @asynccontextmanager
    async def write(self) -> AsyncGenerator[AsyncSession, None]:
        """Session for the enrollment write; failures surface as PersistenceError."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"DB write failed: {e}")
            raise PersistenceError(_describe(e)) from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Check database connectivity (used by the readiness route)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs):
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)


def get_db_manager() -> DatabaseSessionManager:
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with get_db_manager().session() as session:
        yield session
