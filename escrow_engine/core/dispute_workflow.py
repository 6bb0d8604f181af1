"""Dispute Workflow Rules — one open dispute per escrow, oracle-driven adjudication.

Invariants:
    - All functions are PURE: return error / action descriptor, never mutate
    - At most one OPEN dispute per escrow (checked here, enforced again by the
      store's partial unique index)
    - block -> dispute rejected and escrow restored to previous_status
    - flag  -> dispute held for a human adjudicator
    - approve -> auto-resolved only when policy enables it AND the oracle named
      an outcome; otherwise held
    - The automated resolution path requires a recorded APPROVE verdict;
      adjudicators may resolve regardless of verdict

Design Decisions:
    - decide_after_assessment returns a descriptor: the service applies the
      mutation, so the decision table is testable without a store
"""

from enum import Enum

from escrow_engine.core.domain_types import Command, DisputeOutcome, Role, Verdict
from escrow_engine.core.enforce_input import check_required_text
from escrow_engine.core.enforce_transitions import RESOLUTION_TARGETS
from escrow_engine.core.errors import (
    DisputeAlreadyOpenError, EscrowError, InvalidInputError, InvalidStateError,
    PolicyBlockedError, UnauthorizedError,
)
from escrow_engine.core.records import Assessment, Dispute, Principal


DISPUTE_READER_ROLES: frozenset[Role] = frozenset({Role.AUDITOR, Role.ADJUDICATOR})
MAX_DISPUTE_REASON_LENGTH: int = 200
MIN_DISPUTE_DESCRIPTION_LENGTH: int = 5
MAX_DISPUTE_DESCRIPTION_LENGTH: int = 2000


class AssessmentAction(str, Enum):
    """What the service does with a recorded dispute assessment."""
    REJECT = "reject"
    HOLD = "hold"
    AUTO_RESOLVE = "auto_resolve"


def validate_dispute_input(reason: str, description: str) -> EscrowError | None:
    return (
        check_required_text(reason, "reason", MAX_DISPUTE_REASON_LENGTH)
        or check_required_text(
            description, "description", MAX_DISPUTE_DESCRIPTION_LENGTH,
            MIN_DISPUTE_DESCRIPTION_LENGTH,
        )
    )


def check_no_open_dispute(open_dispute: Dispute | None) -> EscrowError | None:
    if open_dispute is not None:
        return DisputeAlreadyOpenError()
    return None


def check_dispute_open(dispute: Dispute) -> EscrowError | None:
    if not dispute.is_open:
        return InvalidStateError(Command.RESOLVE_DISPUTE.value, dispute.status.value)
    return None


def check_outcome(outcome: DisputeOutcome | str) -> EscrowError | None:
    if outcome not in RESOLUTION_TARGETS:
        valid = ", ".join(o.value for o in RESOLUTION_TARGETS)
        return InvalidInputError(f"outcome must be one of: {valid}", "outcome")
    return None


def check_adjudicator(principal: Principal) -> EscrowError | None:
    if not principal.has_role(Role.ADJUDICATOR):
        return UnauthorizedError("Only an adjudicator can act on disputes")
    return None


def check_resolver(principal: Principal | None, dispute: Dispute) -> EscrowError | None:
    """Adjudicators resolve anything open; the automated path needs an APPROVE verdict."""
    if principal is not None:
        return check_adjudicator(principal)
    if dispute.assessment is None or dispute.assessment.verdict != Verdict.APPROVE:
        return PolicyBlockedError(Command.RESOLVE_DISPUTE.value)
    return None


def validate_resolution(
    principal: Principal | None, dispute: Dispute, outcome: DisputeOutcome | str,
) -> EscrowError | None:
    """Chain resolver, outcome and dispute-status checks. Returns first error or None."""
    return (
        check_resolver(principal, dispute)
        or check_outcome(outcome)
        or check_dispute_open(dispute)
    )


def decide_after_assessment(
    assessment: Assessment, auto_resolve_on_approve: bool,
) -> tuple[AssessmentAction, DisputeOutcome | None]:
    """Map an oracle verdict to the follow-up action. Pure — no state mutation."""
    if assessment.verdict == Verdict.BLOCK:
        return AssessmentAction.REJECT, None
    if (
        assessment.verdict == Verdict.APPROVE
        and auto_resolve_on_approve
        and assessment.recommended_outcome in RESOLUTION_TARGETS
    ):
        return AssessmentAction.AUTO_RESOLVE, assessment.recommended_outcome
    return AssessmentAction.HOLD, None


def check_gate_verdict(
    assessment: Assessment, command: Command, require_approval: bool,
) -> EscrowError | None:
    """Gate an action on an oracle verdict.

    block always rejects. With require_approval (reversal), flag rejects too.
    """
    if assessment.verdict == Verdict.BLOCK:
        return PolicyBlockedError(command.value)
    if require_approval and assessment.verdict != Verdict.APPROVE:
        return PolicyBlockedError(command.value)
    return None
