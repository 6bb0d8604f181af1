"""Root conftest — shared test configuration and service fixtures.

Invariants:
    - No test talks to a real database server, payments service or model API
    - Service tests run against FakeEscrowStore; store and route tests use
      in-memory SQLite (fixtures below, tests/api/conftest.py)
"""

import os

# Ensure tests don't accidentally use real API keys
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-fake-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession, async_sessionmaker, create_async_engine,
)

import escrow_engine.models  # noqa: E402,F401  (registers tables on Base)
from escrow_engine.config import Settings  # noqa: E402
from escrow_engine.core.domain_types import EscrowStatus, ProofType  # noqa: E402
from escrow_engine.db.base import Base  # noqa: E402
from escrow_engine.services.escrow_service import EscrowService  # noqa: E402
from tests.fakes import (  # noqa: E402
    BUYER, SELLER, FakeArbitrationOracle, FakeEscrowStore, FakeFundVerifier,
    create_widget_escrow,
)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        oracle_timeout_seconds=1.0,
        auto_resolve_on_approve=False,
    )


@pytest.fixture
def store():
    return FakeEscrowStore()


@pytest.fixture
def verifier():
    return FakeFundVerifier()


@pytest.fixture
def oracle():
    return FakeArbitrationOracle()


@pytest.fixture
def service(store, verifier, oracle, settings):
    return EscrowService(store, verifier, oracle, settings)


@pytest.fixture
async def initiated(service):
    return await create_widget_escrow(service)


@pytest.fixture
async def funded(service, initiated):
    return await service.fund(initiated.id, BUYER, "tx123")


@pytest.fixture
async def in_progress(service, funded):
    return await service.start(funded.id, SELLER)


@pytest.fixture
async def completed(service, in_progress):
    await service.submit_proof(
        in_progress.id, SELLER, ProofType.DELIVERY_CONFIRMATION.value,
        "Delivered to the front desk", "s3://proofs/delivery.jpg",
    )
    escrow = await service.complete(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.COMPLETED
    return escrow


# ─── In-memory SQLite (store and route tests) ───────────────────

@pytest.fixture
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session
