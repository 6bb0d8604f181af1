"""Escrow Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - Request limits mirror the core constants (enforce_input, proof_ledger,
      dispute_workflow, rating_workflow); the core re-checks them
    - Text fields are stripped and must not be blank
    - Response models are built from core records via from_attributes

Design Decisions:
    - Enum/Literal types for proof_type and outcome: Pydantic rejects unknown
      values before the service runs
    - amount stays a string end to end: no float rounding on token amounts
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from escrow_engine.core.domain_types import (
    DisputeOutcome, DisputeStatus, EscrowStatus, EventType, ProofType, Verdict,
)
from escrow_engine.core.dispute_workflow import (
    MAX_DISPUTE_DESCRIPTION_LENGTH, MAX_DISPUTE_REASON_LENGTH,
    MIN_DISPUTE_DESCRIPTION_LENGTH,
)
from escrow_engine.core.enforce_input import (
    FUNDING_REFERENCE_PATTERN, MAX_AMOUNT_LENGTH, MAX_CHAIN_LENGTH, MAX_DESCRIPTION_LENGTH,
    MAX_REASON_LENGTH, MAX_REFERENCE_LENGTH, MAX_SYMBOL_LENGTH,
    MIN_REVERSAL_REASON_LENGTH,
)
from escrow_engine.core.proof_ledger import (
    MAX_FILE_CID_LENGTH, MAX_FILE_REFERENCE_LENGTH, MAX_PROOF_DESCRIPTION_LENGTH,
)
from escrow_engine.core.rating_workflow import MAX_COMMENT_LENGTH, MAX_SCORE, MIN_SCORE


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("cannot be empty or whitespace")
    return v


# --- Requests ------------------------------------------------------------------

class EscrowCreate(BaseModel):
    """Escrow creation — the caller becomes the buyer."""
    seller_id: int = Field(gt=0)
    amount: str = Field(min_length=1, max_length=MAX_AMOUNT_LENGTH)
    token_symbol: str = Field(min_length=1, max_length=MAX_SYMBOL_LENGTH)
    description: str = Field(min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    chain: str = Field(min_length=1, max_length=MAX_CHAIN_LENGTH)
    expires_in_days: int | None = Field(None, ge=1)
    metadata: dict[str, Any] | None = None

    @field_validator("amount", "token_symbol", "description", "chain")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class FundRequest(BaseModel):
    funding_reference: str = Field(min_length=1, max_length=MAX_REFERENCE_LENGTH)

    @field_validator("funding_reference")
    @classmethod
    def strip_reference(cls, v: str) -> str:
        v = _strip_required(v)
        if not FUNDING_REFERENCE_PATTERN.fullmatch(v):
            raise ValueError("may only contain letters, digits and : _ . -")
        return v


class ProofCreate(BaseModel):
    proof_type: ProofType
    description: str = Field(min_length=1, max_length=MAX_PROOF_DESCRIPTION_LENGTH)
    file_reference: str = Field(min_length=1, max_length=MAX_FILE_REFERENCE_LENGTH)
    file_cid: str | None = Field(None, max_length=MAX_FILE_CID_LENGTH)

    @field_validator("description", "file_reference")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class DisputeCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=MAX_DISPUTE_REASON_LENGTH)
    description: str = Field(
        min_length=MIN_DISPUTE_DESCRIPTION_LENGTH,
        max_length=MAX_DISPUTE_DESCRIPTION_LENGTH,
    )

    @field_validator("reason", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class DisputeResolve(BaseModel):
    """Adjudicator resolution — only release or refund close a dispute."""
    outcome: Literal["release", "refund"]


class ReverseRequest(BaseModel):
    reason: str = Field(
        min_length=MIN_REVERSAL_REASON_LENGTH, max_length=MAX_REASON_LENGTH,
    )

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = _strip_required(v)
        if len(v) < MIN_REVERSAL_REASON_LENGTH:
            raise ValueError(
                f"must be at least {MIN_REVERSAL_REASON_LENGTH} characters",
            )
        return v


class RatingCreate(BaseModel):
    rated_user_id: int = Field(gt=0)
    score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    comment: str | None = Field(None, max_length=MAX_COMMENT_LENGTH)


# --- Responses -----------------------------------------------------------------

class EscrowResponse(BaseModel):
    """Escrow transaction — public-facing record."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    buyer_id: int
    seller_id: int
    amount: str
    token_symbol: str
    chain: str
    description: str
    status: EscrowStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None
    funding_reference: str | None = None
    funded_at: datetime | None = None
    started_at: datetime | None = None
    disputed_at: datetime | None = None
    closed_at: datetime | None = None
    creation_verdict: Verdict | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProofResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    escrow_transaction_id: UUID
    submitted_by: int
    proof_type: str
    description: str
    file_reference: str
    file_cid: str | None = None
    created_at: datetime


class AssessmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    verdict: Verdict
    details: str = ""
    recommended_outcome: DisputeOutcome | None = None
    confidence: float | None = None


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    escrow_transaction_id: UUID
    initiator_id: int
    reason: str
    description: str
    status: DisputeStatus
    previous_status: EscrowStatus
    created_at: datetime
    assessment: AssessmentResponse | None = None
    assessed_at: datetime | None = None
    outcome: DisputeOutcome | None = None
    resolved_by: int | None = None
    resolved_at: datetime | None = None


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    escrow_transaction_id: UUID
    rater_id: int
    rated_user_id: int
    score: int
    comment: str | None = None
    created_at: datetime


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    escrow_transaction_id: UUID
    event_type: EventType
    actor_id: int | None = None
    old_status: EscrowStatus | None = None
    new_status: EscrowStatus | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ReputationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    score: float
    rating_count: int
    positive_count: int
    negative_count: int
