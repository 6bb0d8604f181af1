"""Escrow Routes — lifecycle commands, proofs, disputes, ratings and the event log.

Invariants:
    - Routes never contain business logic: parse body, call EscrowService, shape response
    - Every route requires a principal (get_principal) and a per-request service
    - Opening a dispute returns immediately; the arbitration assessment runs as
      a BackgroundTask on its own DB session

Design Decisions:
    - POST per command (fund/start/complete/cancel/reverse) over PATCH status:
      each command carries its own actor and oracle rules
"""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status

from escrow_engine.api.dependencies import (
    OracleFactory, get_escrow_service, get_fund_verifier, get_oracle_factory,
    get_principal,
)
from escrow_engine.config import Settings, get_settings
from escrow_engine.core.domain_types import DisputeId, EscrowId, UserId
from escrow_engine.core.errors import EscrowError
from escrow_engine.core.records import Principal
from escrow_engine.core.repository_protocols import FundVerifier
from escrow_engine.infrastructure import database as db_module
from escrow_engine.infrastructure.escrow_store import SqlEscrowStore
from escrow_engine.schemas.escrow import (
    DisputeCreate, DisputeResponse, EscrowCreate, EscrowResponse, EventResponse,
    FundRequest, ProofCreate, ProofResponse, RatingCreate, RatingResponse,
    ReverseRequest,
)
from escrow_engine.services.escrow_service import EscrowService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/escrows", tags=["escrows"])


async def run_dispute_assessment(
    dispute_id: DisputeId,
    oracle_factory: OracleFactory,
    fund_verifier: FundVerifier,
    settings: Settings,
) -> None:
    """Background task: assess a freshly opened dispute on a new session."""
    if db_module.db_manager is None:
        logger.error(
            "Database not initialized, dispute assessment skipped",
            extra={"dispute_id": str(dispute_id)},
        )
        return
    async with db_module.db_manager.session() as db:
        store = SqlEscrowStore(db)
        service = EscrowService(store, fund_verifier, oracle_factory(store), settings)
        try:
            await service.assess_dispute(dispute_id)
        except EscrowError as e:
            # Dispute stays open; an adjudicator can retry via POST /disputes/{id}/assess
            logger.warning(
                f"Dispute assessment failed: {e.message}",
                extra={"dispute_id": str(dispute_id), "error_code": e.code},
            )


# ─── Transactions ───────────────────────────────────────────────

@router.post("", response_model=EscrowResponse, status_code=status.HTTP_201_CREATED)
async def create_escrow(
    body: EscrowCreate,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    """Create an escrow; the caller is the buyer."""
    escrow = await service.create_escrow(
        principal,
        seller_id=UserId(body.seller_id),
        amount=body.amount,
        token_symbol=body.token_symbol,
        description=body.description,
        chain=body.chain,
        expires_in_days=body.expires_in_days,
        metadata=body.metadata,
    )
    return EscrowResponse.model_validate(escrow)


@router.get("", response_model=list[EscrowResponse])
async def list_escrows(
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    """Escrows where the caller is buyer or seller, newest first."""
    escrows = await service.list_transactions(principal)
    return [EscrowResponse.model_validate(e) for e in escrows]


@router.get("/{escrow_id}", response_model=EscrowResponse)
async def get_escrow(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.get_transaction(EscrowId(escrow_id), principal)
    return EscrowResponse.model_validate(escrow)


@router.post("/{escrow_id}/fund", response_model=EscrowResponse)
async def fund_escrow(
    escrow_id: UUID,
    body: FundRequest,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.fund(EscrowId(escrow_id), principal, body.funding_reference)
    return EscrowResponse.model_validate(escrow)


@router.post("/{escrow_id}/start", response_model=EscrowResponse)
async def start_escrow(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.start(EscrowId(escrow_id), principal)
    return EscrowResponse.model_validate(escrow)


@router.post("/{escrow_id}/complete", response_model=EscrowResponse)
async def complete_escrow(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.complete(EscrowId(escrow_id), principal)
    return EscrowResponse.model_validate(escrow)


@router.post("/{escrow_id}/cancel", response_model=EscrowResponse)
async def cancel_escrow(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.cancel(EscrowId(escrow_id), principal)
    return EscrowResponse.model_validate(escrow)


@router.post("/{escrow_id}/reverse", response_model=EscrowResponse)
async def reverse_escrow(
    escrow_id: UUID,
    body: ReverseRequest,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    """Oracle-gated reversal of a completed or disputed escrow."""
    escrow = await service.reverse(EscrowId(escrow_id), principal, body.reason)
    return EscrowResponse.model_validate(escrow)


# ─── Proofs ─────────────────────────────────────────────────────

@router.post(
    "/{escrow_id}/proofs", response_model=ProofResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_proof(
    escrow_id: UUID,
    body: ProofCreate,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    proof = await service.submit_proof(
        EscrowId(escrow_id), principal,
        proof_type=body.proof_type.value,
        description=body.description,
        file_reference=body.file_reference,
        file_cid=body.file_cid,
    )
    return ProofResponse.model_validate(proof)


@router.get("/{escrow_id}/proofs", response_model=list[ProofResponse])
async def list_proofs(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    proofs = await service.list_proofs(EscrowId(escrow_id), principal)
    return [ProofResponse.model_validate(p) for p in proofs]


# ─── Disputes & ratings ─────────────────────────────────────────

@router.post(
    "/{escrow_id}/disputes", response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_dispute(
    escrow_id: UUID,
    body: DisputeCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
    oracle_factory: OracleFactory = Depends(get_oracle_factory),
    fund_verifier: FundVerifier = Depends(get_fund_verifier),
    settings: Settings = Depends(get_settings),
):
    """Open a dispute; arbitration runs after the response is sent."""
    dispute = await service.open_dispute(
        EscrowId(escrow_id), principal, body.reason, body.description,
    )
    background_tasks.add_task(
        run_dispute_assessment, dispute.id, oracle_factory, fund_verifier, settings,
    )
    return DisputeResponse.model_validate(dispute)


@router.post(
    "/{escrow_id}/ratings", response_model=RatingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def rate_party(
    escrow_id: UUID,
    body: RatingCreate,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    rating = await service.rate(
        EscrowId(escrow_id), principal,
        rated_user_id=UserId(body.rated_user_id),
        score=body.score,
        comment=body.comment,
    )
    return RatingResponse.model_validate(rating)


@router.get("/{escrow_id}/events", response_model=list[EventResponse])
async def list_events(
    escrow_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    events = await service.list_events(EscrowId(escrow_id), principal)
    return [EventResponse.model_validate(e) for e in events]
