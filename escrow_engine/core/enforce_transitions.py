"""Transition Enforcement — the escrow transition table and the checks that guard it.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Return an EscrowError instance on violation, None on success
    - Check order is fixed: visibility -> actor role -> current status.
      A non-party can never observe state through differing error codes
    - TRANSITIONS is the only place an edge between statuses is declared

Design Decisions:
    - Explicit dict over a state machine library: every edge visible in one place
    - Missing escrow and non-party caller return the SAME NotFoundError (same
      message, same code), so transaction existence does not leak
"""

from dataclasses import dataclass

from escrow_engine.core.domain_types import (
    Command, DisputeOutcome, EscrowStatus, PartyRole, Role,
)
from escrow_engine.core.errors import (
    EscrowError, InternalError, InvalidStateError, NotFoundError, UnauthorizedError,
)
from escrow_engine.core.records import EscrowTransaction, Principal


@dataclass(frozen=True)
class TransitionRule:
    """One row of the transition table."""
    allowed_from: frozenset[EscrowStatus]
    actor: PartyRole
    target: EscrowStatus | None  # None: no status change, or decided by outcome


_S = EscrowStatus

TRANSITIONS: dict[Command, TransitionRule] = {
    Command.FUND: TransitionRule(
        frozenset({_S.INITIATED}), PartyRole.BUYER, _S.FUNDED,
    ),
    Command.START: TransitionRule(
        frozenset({_S.FUNDED}), PartyRole.SELLER, _S.IN_PROGRESS,
    ),
    Command.SUBMIT_PROOF: TransitionRule(
        frozenset({_S.IN_PROGRESS, _S.EVIDENCE_SUBMITTED}),
        PartyRole.EITHER, _S.EVIDENCE_SUBMITTED,
    ),
    Command.COMPLETE: TransitionRule(
        frozenset({_S.IN_PROGRESS, _S.EVIDENCE_SUBMITTED}),
        PartyRole.BUYER, _S.COMPLETED,
    ),
    Command.OPEN_DISPUTE: TransitionRule(
        frozenset({_S.FUNDED, _S.IN_PROGRESS, _S.EVIDENCE_SUBMITTED}),
        PartyRole.EITHER, _S.DISPUTED,
    ),
    Command.RESOLVE_DISPUTE: TransitionRule(
        frozenset({_S.DISPUTED}), PartyRole.EITHER, None,
    ),
    Command.REVERSE: TransitionRule(
        frozenset({_S.COMPLETED, _S.DISPUTED}), PartyRole.EITHER, _S.REVERSED,
    ),
    Command.CANCEL: TransitionRule(
        frozenset({_S.INITIATED}), PartyRole.EITHER, _S.CANCELLED,
    ),
    Command.RATE: TransitionRule(
        frozenset({_S.COMPLETED, _S.REFUNDED, _S.REVERSED}),
        PartyRole.EITHER, None,
    ),
}

# Non-parties allowed to read a transaction and its event log
TRANSACTION_READER_ROLES: frozenset[Role] = frozenset({Role.AUDITOR, Role.ADJUDICATOR})

RESOLUTION_TARGETS: dict[DisputeOutcome, EscrowStatus] = {
    DisputeOutcome.RELEASE: _S.COMPLETED,
    DisputeOutcome.REFUND: _S.REFUNDED,
}


def _build_edges() -> frozenset[tuple[EscrowStatus, EscrowStatus]]:
    edges = {
        (source, rule.target)
        for rule in TRANSITIONS.values() if rule.target is not None
        for source in rule.allowed_from
        if source != rule.target
    }
    edges |= {(_S.DISPUTED, target) for target in RESOLUTION_TARGETS.values()}
    # Rejected dispute restores the pre-dispute status
    edges |= {
        (_S.DISPUTED, source)
        for source in TRANSITIONS[Command.OPEN_DISPUTE].allowed_from
    }
    return frozenset(edges)


ALLOWED_EDGES = _build_edges()


def is_allowed_edge(old: EscrowStatus, new: EscrowStatus) -> bool:
    """True if old -> new is an edge of the transition table."""
    return (old, new) in ALLOWED_EDGES


def check_visible(
    escrow: EscrowTransaction | None,
    escrow_id: object,
    principal: Principal,
    reader_roles: frozenset[Role] = frozenset(),
) -> EscrowError | None:
    """Caller must be a party (or hold a reader role) — else indistinguishable from missing."""
    if escrow is None:
        return NotFoundError("Escrow transaction", str(escrow_id))
    if escrow.is_party(principal.user_id):
        return None
    if reader_roles & principal.roles:
        return None
    return NotFoundError("Escrow transaction", str(escrow_id))


def check_actor(
    escrow: EscrowTransaction, principal: Principal, command: Command,
) -> EscrowError | None:
    """Party must hold the side the command requires."""
    required = TRANSITIONS[command].actor
    if required == PartyRole.BUYER and principal.user_id != escrow.buyer_id:
        return UnauthorizedError(f"Only the buyer can {command.value.replace('_', ' ')}")
    if required == PartyRole.SELLER and principal.user_id != escrow.seller_id:
        return UnauthorizedError(f"Only the seller can {command.value.replace('_', ' ')}")
    if required == PartyRole.EITHER and not escrow.is_party(principal.user_id):
        return UnauthorizedError("Only a party to the escrow can perform this action")
    return None


def check_state(escrow: EscrowTransaction, command: Command) -> EscrowError | None:
    """Current status must be a source of the command's edge."""
    if escrow.status not in TRANSITIONS[command].allowed_from:
        return InvalidStateError(command.value, escrow.status.value)
    return None


def check_integrity(escrow: EscrowTransaction) -> EscrowError | None:
    """Stored record must satisfy the aggregate invariants."""
    if escrow.buyer_id == escrow.seller_id:
        return InternalError(f"Escrow {escrow.id} has identical buyer and seller")
    if not isinstance(escrow.status, EscrowStatus):
        return InternalError(f"Escrow {escrow.id} has unknown status {escrow.status!r}")
    return None


def validate_party_command(
    escrow: EscrowTransaction | None,
    escrow_id: object,
    principal: Principal,
    command: Command,
) -> EscrowError | None:
    """Chain visibility, integrity, actor and state checks. Returns first error or None."""
    not_visible = check_visible(escrow, escrow_id, principal)
    if not_visible:
        return not_visible
    return (
        check_integrity(escrow)
        or check_actor(escrow, principal, command)
        or check_state(escrow, command)
    )


def target_status(command: Command) -> EscrowStatus:
    """Status a command moves to. Only valid for commands with a fixed target."""
    target = TRANSITIONS[command].target
    if target is None:
        raise ValueError(f"{command.value} has no fixed target status")
    return target


def resolution_status(outcome: DisputeOutcome) -> EscrowStatus | None:
    """Status a dispute resolution outcome moves to; None if not a resolution outcome."""
    return RESOLUTION_TARGETS.get(outcome)
