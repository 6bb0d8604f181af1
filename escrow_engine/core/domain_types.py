"""Domain Types — rich types that replace bare primitives across the escrow engine.

Invariants:
    - EscrowId, ProofId, DisputeId, RatingId, EventId wrap UUIDs
    - UserId wraps the integer principal id issued by the upstream gateway
    - All lifecycle states encoded as Enums — no raw string matching
    - TERMINAL_STATUSES and RATEABLE_STATUSES are the single source of truth for closure

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and to String DB columns without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

EscrowId = NewType("EscrowId", UUID)
ProofId = NewType("ProofId", UUID)
DisputeId = NewType("DisputeId", UUID)
RatingId = NewType("RatingId", UUID)
EventId = NewType("EventId", UUID)
UserId = NewType("UserId", int)


# ─── Enums ───────────────────────────────────────────────────────

class EscrowStatus(str, Enum):
    """Escrow lifecycle states — maps to DB `status` column."""
    INITIATED = "initiated"
    FUNDED = "funded"
    IN_PROGRESS = "in_progress"
    EVIDENCE_SUBMITTED = "evidence_submitted"
    DISPUTED = "disputed"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    REVERSED = "reversed"


TERMINAL_STATUSES = frozenset({
    EscrowStatus.COMPLETED,
    EscrowStatus.REFUNDED,
    EscrowStatus.CANCELLED,
    EscrowStatus.REVERSED,
})

# Terminal AND resolved: a cancelled escrow never moved value, so nobody rates it
RATEABLE_STATUSES = frozenset({
    EscrowStatus.COMPLETED,
    EscrowStatus.REFUNDED,
    EscrowStatus.REVERSED,
})


class Command(str, Enum):
    """Commands accepted by the state machine."""
    CREATE = "create_escrow"
    FUND = "fund"
    START = "start"
    SUBMIT_PROOF = "submit_proof"
    COMPLETE = "complete"
    OPEN_DISPUTE = "open_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    REVERSE = "reverse"
    CANCEL = "cancel"
    RATE = "rate"


class PartyRole(str, Enum):
    """Which side of the escrow a command requires."""
    BUYER = "buyer"
    SELLER = "seller"
    EITHER = "either"


class Role(str, Enum):
    """Non-party roles carried by a principal."""
    AUDITOR = "auditor"
    ADJUDICATOR = "adjudicator"


class ProofType(str, Enum):
    """Evidence artifact categories."""
    PHOTO = "photo"
    DOCUMENT = "document"
    DELIVERY_CONFIRMATION = "delivery_confirmation"
    TRACKING = "tracking"
    MESSAGE = "message"
    OTHER = "other"


class DisputeStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class DisputeOutcome(str, Enum):
    """How a dispute closed. RELEASE pays the seller, REFUND returns to buyer."""
    RELEASE = "release"
    REFUND = "refund"
    REVERSED = "reversed"


class Verdict(str, Enum):
    """Arbitration oracle verdicts."""
    APPROVE = "approve"
    BLOCK = "block"
    FLAG = "flag"


class EventType(str, Enum):
    """Event log entries — one per transition or audited attempt."""
    ESCROW_CREATED = "escrow.created"
    ESCROW_FUNDED = "escrow.funded"
    ESCROW_STARTED = "escrow.started"
    PROOF_SUBMITTED = "escrow.proof_submitted"
    ESCROW_COMPLETED = "escrow.completed"
    ESCROW_CANCELLED = "escrow.cancelled"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_ASSESSED = "dispute.assessed"
    DISPUTE_RESOLVED = "dispute.resolved"
    DISPUTE_REJECTED = "dispute.rejected"
    REVERSAL_REQUESTED = "escrow.reversal_requested"
    REVERSAL_BLOCKED = "escrow.reversal_blocked"
    ESCROW_REVERSED = "escrow.reversed"
    ESCROW_RATED = "escrow.rated"


class Settlement(str, Enum):
    """Instruction carried by closing events for the settlement service."""
    RELEASE = "release"
    REFUND = "refund"
    REVERSE = "reverse"
