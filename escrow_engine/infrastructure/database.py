"""Escrow Database — async engine, session lifecycle, and readiness check.

Invariants:
    - A session that raises is rolled back before the error leaves the context
    - SQLAlchemy failures escaping a session surface as DatabaseError (503);
      escrow domain errors raised inside a session pass through untouched
    - Pool sizing applies to server databases only; SQLite (tests, local dev)
      keeps the driver's default pool

Design Decisions:
    - One module-level db_manager, assigned in the FastAPI lifespan. Route
      modules and the dispute background task read it through this module
      at call time so tests can swap it
    - expire_on_commit=False: records are converted from ORM rows after commit
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from escrow_engine.core.errors import DatabaseError

logger = logging.getLogger(__name__)

# Most specific first: IntegrityError and OperationalError subclass DBAPIError.
_FAILURE_MAP: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "Escrow ledger constraint violated", "commit"),
    (OperationalError, "Escrow database unreachable", "execute"),
    (DBAPIError, "Escrow database driver error", "query"),
    (SQLAlchemyError, "Escrow database operation failed", "unknown"),
)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


class DatabaseSessionManager:
    """Owns the async engine and hands out escrow sessions."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        engine_kwargs: dict = {"pool_pre_ping": True}
        if not _is_sqlite(database_url):
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; roll back and translate storage failures on error."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            message, operation = next(
                (msg, op) for exc_type, msg, op in _FAILURE_MAP
                if isinstance(e, exc_type)
            )
            logger.error(
                "Escrow DB failure", extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(message, operation) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """True when the escrow database answers a trivial query."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except (DatabaseError, OSError) as e:
            logger.warning("Escrow DB not ready", extra={"error": str(e)})
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one escrow session per request."""
    if db_manager is None:
        raise DatabaseError("Escrow database not initialized", "connect")
    async with db_manager.session() as session:
        yield session
