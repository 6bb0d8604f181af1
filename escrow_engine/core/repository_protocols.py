"""Boundary Protocols — contracts between the escrow core and its collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO (store, fund verification, arbitration) accessed through Protocol types
    - Implementations provided by the shell via dependency injection
    - update_with_expected_status is a compare-and-swap on status: it returns
      None (and changes nothing) when the stored status differs from `expected`
    - append_proof_with_expected_status is the same compare-and-swap (to
      EVIDENCE_SUBMITTED) with the proof insert in the same transaction:
      either both land or neither does

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: implementations do IO; the pure rules that the
      service applies around these calls are never async
"""

from typing import Any, Protocol

from escrow_engine.core.domain_types import (
    DisputeId, EscrowId, EscrowStatus, EventType, UserId,
)
from escrow_engine.core.records import (
    ArbitrationContext, Assessment, Dispute, EscrowEvent, EscrowTransaction,
    Proof, Rating,
)


class EscrowStore(Protocol):
    """Durable storage for the escrow aggregate — implemented by shell."""

    async def create(self, fields: dict[str, Any]) -> EscrowTransaction: ...
    async def get_by_id(self, escrow_id: EscrowId) -> EscrowTransaction | None: ...
    async def update_with_expected_status(
        self,
        escrow_id: EscrowId,
        expected: EscrowStatus,
        changes: dict[str, Any],
    ) -> EscrowTransaction | None: ...
    async def list_by_party(self, user_id: UserId) -> list[EscrowTransaction]: ...

    async def append_proof_with_expected_status(
        self,
        escrow_id: EscrowId,
        expected: EscrowStatus,
        fields: dict[str, Any],
    ) -> tuple[EscrowTransaction, Proof] | None: ...
    async def list_proofs_by_transaction(self, escrow_id: EscrowId) -> list[Proof]: ...

    async def create_dispute(self, fields: dict[str, Any]) -> Dispute: ...
    async def get_dispute(self, dispute_id: DisputeId) -> Dispute | None: ...
    async def get_open_dispute_by_transaction(
        self, escrow_id: EscrowId,
    ) -> Dispute | None: ...
    async def update_dispute(
        self, dispute_id: DisputeId, changes: dict[str, Any],
    ) -> Dispute: ...

    async def create_rating(self, fields: dict[str, Any]) -> Rating: ...
    async def get_rating(
        self, rater_id: UserId, escrow_id: EscrowId,
    ) -> Rating | None: ...
    async def list_ratings_for_user(self, user_id: UserId) -> list[Rating]: ...

    async def append_event(
        self,
        escrow_id: EscrowId,
        event_type: EventType,
        actor_id: UserId | None = None,
        old_status: EscrowStatus | None = None,
        new_status: EscrowStatus | None = None,
        payload: dict[str, Any] | None = None,
    ) -> EscrowEvent: ...
    async def list_events(self, escrow_id: EscrowId) -> list[EscrowEvent]: ...


class FundVerifier(Protocol):
    """Confirms that a funding reference (tx hash, payment token) is locked."""
    async def verify(self, reference: str) -> bool: ...


class ArbitrationOracle(Protocol):
    """External decision service for gated actions: approve / block / flag."""
    async def assess(self, context: ArbitrationContext) -> Assessment: ...
