"""Dispute Routes — read, re-assess and resolve disputes.

Invariants:
    - GET visible to the escrow's parties, auditors and adjudicators
    - assess and resolve require the adjudicator role (checked in the service)
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from escrow_engine.api.dependencies import get_escrow_service, get_principal
from escrow_engine.core.domain_types import DisputeId
from escrow_engine.core.records import Principal
from escrow_engine.schemas.escrow import DisputeResolve, DisputeResponse, EscrowResponse
from escrow_engine.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/disputes", tags=["disputes"])


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    dispute = await service.get_dispute(DisputeId(dispute_id), principal)
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/assess", response_model=DisputeResponse)
async def assess_dispute(
    dispute_id: UUID,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    """Synchronous re-run of the arbitration assessment (adjudicators)."""
    dispute = await service.reassess_dispute(DisputeId(dispute_id), principal)
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/resolve", response_model=EscrowResponse)
async def resolve_dispute(
    dispute_id: UUID,
    body: DisputeResolve,
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    escrow = await service.resolve_dispute(DisputeId(dispute_id), body.outcome, principal)
    return EscrowResponse.model_validate(escrow)
