"""Database session manager — rollback, failure translation, readiness."""

import pytest
from sqlalchemy import text

import escrow_engine.infrastructure.database as db_module
from escrow_engine.core.errors import DatabaseError, NotFoundError
from escrow_engine.infrastructure.database import DatabaseSessionManager, get_db


@pytest.fixture
async def manager():
    m = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    yield m
    await m.dispose()


async def test_health_check_passes(manager):
    assert await manager.health_check() is True


async def test_sqlalchemy_failure_becomes_database_error(manager):
    with pytest.raises(DatabaseError) as exc_info:
        async with manager.session() as db:
            await db.execute(text("SELECT * FROM no_such_table"))
    assert exc_info.value.http_status == 503
    assert exc_info.value.operation == "execute"


async def test_domain_errors_pass_through(manager):
    with pytest.raises(NotFoundError):
        async with manager.session():
            raise NotFoundError("escrow", "missing")


async def test_get_db_without_manager(monkeypatch):
    monkeypatch.setattr(db_module, "db_manager", None)
    with pytest.raises(DatabaseError):
        await anext(get_db())
