"""Domain Records — immutable snapshots exchanged between the core and the store.

Invariants:
    - Records are frozen: a status change is a new record returned by the store
    - EscrowTransaction is the aggregate root; Proof, Dispute, Rating, EscrowEvent
      reference it by escrow_transaction_id
    - Principal carries identity + roles for ONE call; never stored globally

Design Decisions:
    - Dataclasses over ORM objects in the core: the core never imports SQLAlchemy,
      and the store protocol can be satisfied by any backend (SQL, test fakes)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from escrow_engine.core.domain_types import (
    DisputeId, DisputeOutcome, DisputeStatus, EscrowId, EscrowStatus,
    EventId, EventType, ProofId, RatingId, Role, UserId, Verdict, Command,
)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller for a single command."""
    user_id: UserId
    roles: frozenset[Role] = frozenset()

    def has_role(self, role: Role) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class EscrowTransaction:
    id: EscrowId
    buyer_id: UserId
    seller_id: UserId
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
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def counterparty_of(self, user_id: int) -> UserId:
        return self.seller_id if user_id == self.buyer_id else self.buyer_id


@dataclass(frozen=True)
class Proof:
    id: ProofId
    escrow_transaction_id: EscrowId
    submitted_by: UserId
    proof_type: str
    description: str
    file_reference: str
    created_at: datetime
    file_cid: str | None = None


@dataclass(frozen=True)
class Assessment:
    """Arbitration oracle output."""
    verdict: Verdict
    details: str = ""
    recommended_outcome: DisputeOutcome | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class Dispute:
    id: DisputeId
    escrow_transaction_id: EscrowId
    initiator_id: UserId
    reason: str
    description: str
    status: DisputeStatus
    previous_status: EscrowStatus
    created_at: datetime
    assessment: Assessment | None = None
    assessed_at: datetime | None = None
    outcome: DisputeOutcome | None = None
    resolved_by: UserId | None = None
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == DisputeStatus.OPEN


@dataclass(frozen=True)
class Rating:
    id: RatingId
    escrow_transaction_id: EscrowId
    rater_id: UserId
    rated_user_id: UserId
    score: int
    created_at: datetime
    comment: str | None = None


@dataclass(frozen=True)
class EscrowEvent:
    id: EventId
    escrow_transaction_id: EscrowId
    event_type: EventType
    created_at: datetime
    actor_id: UserId | None = None
    old_status: EscrowStatus | None = None
    new_status: EscrowStatus | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArbitrationContext:
    """Everything an arbitration oracle sees for one gated action."""
    action: Command
    actor_id: UserId
    escrow_id: EscrowId | None = None
    buyer_id: UserId | None = None
    seller_id: UserId | None = None
    amount: str | None = None
    token_symbol: str | None = None
    status: EscrowStatus | None = None
    reason: str | None = None
    description: str | None = None
    initiator_id: UserId | None = None
    proof_count: int = 0


@dataclass(frozen=True)
class Reputation:
    user_id: UserId
    score: float
    rating_count: int
    positive_count: int
    negative_count: int
