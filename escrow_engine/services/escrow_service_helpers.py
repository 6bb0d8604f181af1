"""Escrow Service Helpers — pure builders used by EscrowService.

Invariants:
    - No IO here: context and payload builders only read records
"""

from datetime import datetime, timezone

from escrow_engine.core.domain_types import Command, Settlement, UserId
from escrow_engine.core.errors import EscrowError
from escrow_engine.core.records import (
    ArbitrationContext, Assessment, Dispute, EscrowTransaction,
)


def raise_if(error: EscrowError | None) -> None:
    if error is not None:
        raise error


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def creation_context(
    actor_id: UserId, seller_id: UserId, amount: str, token_symbol: str,
    description: str,
) -> ArbitrationContext:
    return ArbitrationContext(
        action=Command.CREATE,
        actor_id=actor_id,
        buyer_id=actor_id,
        seller_id=seller_id,
        amount=amount,
        token_symbol=token_symbol,
        description=description,
    )


def escrow_context(
    command: Command, actor_id: UserId, escrow: EscrowTransaction, **extra,
) -> ArbitrationContext:
    return ArbitrationContext(
        action=command,
        actor_id=actor_id,
        escrow_id=escrow.id,
        buyer_id=escrow.buyer_id,
        seller_id=escrow.seller_id,
        amount=escrow.amount,
        token_symbol=escrow.token_symbol,
        status=escrow.status,
        **extra,
    )


def dispute_context(
    escrow: EscrowTransaction, dispute: Dispute, proof_count: int,
) -> ArbitrationContext:
    return escrow_context(
        Command.OPEN_DISPUTE, dispute.initiator_id, escrow,
        reason=dispute.reason,
        description=dispute.description,
        initiator_id=dispute.initiator_id,
        proof_count=proof_count,
    )


def settlement_payload(settlement: Settlement, **extra) -> dict:
    return {"settlement": settlement.value, **extra}


def assessment_payload(assessment: Assessment) -> dict:
    return {
        "verdict": assessment.verdict.value,
        "recommended_outcome": (
            assessment.recommended_outcome.value
            if assessment.recommended_outcome else None
        ),
        "confidence": assessment.confidence,
        "details": assessment.details,
    }
