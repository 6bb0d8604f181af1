"""Route test fixtures — FastAPI app over in-memory SQLite with fake oracles.

Invariants:
    - Every test gets a fresh in-memory SQLite database (root conftest test_engine)
    - get_db dependency overridden to use the test session factory
    - db_manager patched for the dispute-assessment background task,
      which opens its own session instead of using get_db
    - Oracle and fund verifier replaced through dependency overrides

Design Decisions:
    - Background tasks run inside the httpx ASGITransport call, so a test can
      assert on the assessment right after POST /disputes returns
"""

import pytest
from httpx import ASGITransport, AsyncClient

import escrow_engine.infrastructure.database as db_module
from escrow_engine.api.dependencies import get_fund_verifier, get_oracle_factory
from escrow_engine.config import Settings, get_settings
from escrow_engine.infrastructure.database import DatabaseSessionManager, get_db
from escrow_engine.main import app
from tests.fakes import FakeArbitrationOracle, FakeFundVerifier, headers


@pytest.fixture
def api_oracle():
    return FakeArbitrationOracle()


@pytest.fixture
def api_verifier():
    return FakeFundVerifier()


@pytest.fixture
def api_settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        oracle_timeout_seconds=1.0,
        auto_resolve_on_approve=False,
    )


@pytest.fixture
async def client(test_engine, test_session_factory, api_oracle, api_verifier, api_settings):
    """FastAPI test client with DB, oracle and verifier dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_fund_verifier] = lambda: api_verifier
    app.dependency_overrides[get_oracle_factory] = lambda: (lambda store: api_oracle)

    # Patch db_manager for background tasks that use it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
async def created(client):
    """An INITIATED escrow: buyer 1, seller 2."""
    res = await client.post(
        "/api/v1/escrows",
        json={
            "seller_id": 2, "amount": "100", "token_symbol": "USD",
            "description": "widget", "chain": "test",
        },
        headers=headers(1),
    )
    assert res.status_code == 201
    return res.json()


@pytest.fixture
async def started(client, created):
    """An IN_PROGRESS escrow."""
    escrow_id = created["id"]
    res = await client.post(
        f"/api/v1/escrows/{escrow_id}/fund",
        json={"funding_reference": "tx123"}, headers=headers(1),
    )
    assert res.status_code == 200
    res = await client.post(f"/api/v1/escrows/{escrow_id}/start", headers=headers(2))
    assert res.status_code == 200
    return res.json()
