"""User Routes — reputation read model."""

from fastapi import APIRouter, Depends, Path

from escrow_engine.api.dependencies import get_escrow_service, get_principal
from escrow_engine.core.domain_types import UserId
from escrow_engine.core.records import Principal
from escrow_engine.schemas.escrow import ReputationResponse
from escrow_engine.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/{user_id}/reputation", response_model=ReputationResponse)
async def get_reputation(
    user_id: int = Path(gt=0),
    principal: Principal = Depends(get_principal),
    service: EscrowService = Depends(get_escrow_service),
):
    """Any authenticated caller may read a reputation score."""
    reputation = await service.get_reputation(UserId(user_id))
    return ReputationResponse.model_validate(reputation)
