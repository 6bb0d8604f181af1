"""API Dependencies — principal extraction and per-request service wiring.

Invariants:
    - The principal comes ONLY from X-Principal-Id / X-Principal-Roles, which the
      upstream authenticating gateway sets; missing or non-integer id -> 401
    - Unknown role names are ignored, never an error
    - One SqlEscrowStore and one EscrowService per request, bound to the request session

Design Decisions:
    - Oracle construction goes through get_oracle_factory so background tasks
      (which open their own session) build the same oracle the request would;
      tests override the factory, not the oracle class
"""

import logging
from typing import Callable

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_engine.config import Settings, get_settings
from escrow_engine.core.domain_types import Role, UserId
from escrow_engine.core.errors import UnauthenticatedError
from escrow_engine.core.records import Principal
from escrow_engine.core.repository_protocols import (
    ArbitrationOracle, EscrowStore, FundVerifier,
)
from escrow_engine.infrastructure.arbitration_oracle import build_arbitration_oracle
from escrow_engine.infrastructure.database import get_db
from escrow_engine.infrastructure.escrow_store import SqlEscrowStore
from escrow_engine.infrastructure.fund_verifier import HttpFundVerifier
from escrow_engine.services.escrow_service import EscrowService

logger = logging.getLogger(__name__)

OracleFactory = Callable[[EscrowStore], ArbitrationOracle]


def parse_roles(raw: str | None) -> frozenset[Role]:
    """Comma-separated role names -> known Roles."""
    known = {r.value: r for r in Role}
    names = (part.strip().lower() for part in (raw or "").split(","))
    return frozenset(known[name] for name in names if name in known)


async def get_principal(
    x_principal_id: str | None = Header(None),
    x_principal_roles: str | None = Header(None),
) -> Principal:
    if x_principal_id is None or not x_principal_id.strip().isdigit():
        raise UnauthenticatedError()
    user_id = int(x_principal_id.strip())
    if user_id <= 0:
        raise UnauthenticatedError()
    return Principal(user_id=UserId(user_id), roles=parse_roles(x_principal_roles))


async def get_store(db: AsyncSession = Depends(get_db)) -> EscrowStore:
    return SqlEscrowStore(db)


def get_fund_verifier(settings: Settings = Depends(get_settings)) -> FundVerifier:
    return HttpFundVerifier(
        settings.fund_verifier_url,
        api_key=settings.fund_verifier_api_key,
        timeout_seconds=settings.oracle_timeout_seconds,
    )


def get_oracle_factory(settings: Settings = Depends(get_settings)) -> OracleFactory:
    return lambda store: build_arbitration_oracle(settings, store)


async def get_escrow_service(
    store: EscrowStore = Depends(get_store),
    fund_verifier: FundVerifier = Depends(get_fund_verifier),
    oracle_factory: OracleFactory = Depends(get_oracle_factory),
    settings: Settings = Depends(get_settings),
) -> EscrowService:
    return EscrowService(store, fund_verifier, oracle_factory(store), settings)
