"""Escrow Disputes — service tests for open / assess / resolve and reversal.

Tests cover:
    - opening a dispute freezes the escrow, one open dispute at a time
    - assessment: block restores the prior status, flag holds,
      approve + auto-resolve settles by the recommended outcome
    - resolution by adjudicator only, settlement in the event payload
    - reversal gated on an approve verdict and audited before the oracle runs
"""

from uuid import uuid4

import pytest

from escrow_engine.config import Settings
from escrow_engine.core.domain_types import (
    Command, DisputeOutcome, DisputeStatus, EscrowStatus, EventType, Verdict,
)
from escrow_engine.core.errors import (
    DisputeAlreadyOpenError, InvalidInputError, InvalidStateError, NotFoundError,
    OracleTimeoutError, PolicyBlockedError, UnauthorizedError,
)
from escrow_engine.services.escrow_service import EscrowService
from tests.fakes import ADJUDICATOR, AUDITOR, BUYER, OUTSIDER, SELLER


@pytest.fixture
def auto_service(store, verifier, oracle):
    settings = Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        oracle_timeout_seconds=1.0,
        auto_resolve_on_approve=True,
    )
    return EscrowService(store, verifier, oracle, settings)


async def _open(service, escrow, principal=BUYER):
    return await service.open_dispute(
        escrow.id, principal, "not delivered", "Package never arrived",
    )


# ─── Opening ─────────────────────────────────────────────────────

async def test_open_dispute_freezes_escrow(service, store, in_progress):
    dispute = await _open(service, in_progress)
    assert dispute.status == DisputeStatus.OPEN
    assert dispute.previous_status == EscrowStatus.IN_PROGRESS

    escrow = await service.get_transaction(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.DISPUTED
    assert escrow.disputed_at is not None
    assert store.event_types(in_progress.id)[-1] == EventType.DISPUTE_OPENED.value


async def test_dispute_on_completed_invalid_state(service, completed):
    with pytest.raises(InvalidStateError):
        await _open(service, completed)


async def test_dispute_on_initiated_invalid_state(service, initiated):
    with pytest.raises(InvalidStateError):
        await _open(service, initiated)


async def test_second_dispute_while_open_conflicts(service, in_progress):
    await _open(service, in_progress)
    with pytest.raises(DisputeAlreadyOpenError):
        await _open(service, in_progress, SELLER)


async def test_short_description_rejected(service, in_progress):
    with pytest.raises(InvalidInputError):
        await service.open_dispute(in_progress.id, BUYER, "late", "meh")


async def test_outsider_cannot_open_dispute(service, in_progress):
    with pytest.raises(NotFoundError):
        await _open(service, in_progress, OUTSIDER)


async def test_failed_dispute_insert_restores_status(service, store, in_progress):
    async def broken_create(fields):
        raise RuntimeError("insert failed")

    store.create_dispute = broken_create
    with pytest.raises(RuntimeError):
        await _open(service, in_progress)
    escrow = await service.get_transaction(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.IN_PROGRESS
    assert escrow.disputed_at is None


# ─── Assessment ──────────────────────────────────────────────────

async def test_blocked_dispute_restores_previous_status(service, store, oracle, in_progress):
    oracle.script(Command.OPEN_DISPUTE, Verdict.BLOCK, details="no evidence")
    dispute = await _open(service, in_progress)

    dispute = await service.assess_dispute(dispute.id)
    assert dispute.status == DisputeStatus.REJECTED
    assert dispute.assessment.verdict == Verdict.BLOCK

    escrow = await service.get_transaction(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.IN_PROGRESS
    assert store.event_types(in_progress.id)[-2:] == [
        EventType.DISPUTE_ASSESSED.value, EventType.DISPUTE_REJECTED.value,
    ]


async def test_flagged_dispute_holds_for_adjudicator(service, oracle, in_progress):
    oracle.script(Command.OPEN_DISPUTE, Verdict.FLAG, confidence=0.6)
    dispute = await _open(service, in_progress)

    dispute = await service.assess_dispute(dispute.id)
    assert dispute.status == DisputeStatus.OPEN
    assert dispute.assessment.verdict == Verdict.FLAG
    assert dispute.assessed_at is not None
    escrow = await service.get_transaction(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.DISPUTED


async def test_approve_holds_when_auto_resolve_disabled(service, oracle, in_progress):
    oracle.script(
        Command.OPEN_DISPUTE, Verdict.APPROVE,
        recommended_outcome=DisputeOutcome.REFUND,
    )
    dispute = await _open(service, in_progress)
    dispute = await service.assess_dispute(dispute.id)
    assert dispute.status == DisputeStatus.OPEN


async def test_approve_with_auto_resolve_refunds(auto_service, store, oracle, in_progress):
    oracle.script(
        Command.OPEN_DISPUTE, Verdict.APPROVE,
        recommended_outcome=DisputeOutcome.REFUND,
    )
    dispute = await _open(auto_service, in_progress)
    dispute = await auto_service.assess_dispute(dispute.id)

    assert dispute.status == DisputeStatus.RESOLVED
    assert dispute.outcome == DisputeOutcome.REFUND
    assert dispute.resolved_by is None
    escrow = await auto_service.get_transaction(in_progress.id, BUYER)
    assert escrow.status == EscrowStatus.REFUNDED

    resolved = [e for e in store.events if e.event_type == EventType.DISPUTE_RESOLVED]
    assert resolved[0].payload["settlement"] == "refund"
    assert resolved[0].payload["automated"] is True


async def test_assessment_context_counts_proofs(service, oracle, in_progress):
    await service.submit_proof(in_progress.id, SELLER, "photo", "at door", "ref-1")
    dispute = await _open(service, in_progress)
    await service.assess_dispute(dispute.id)
    context = oracle.contexts[-1]
    assert context.action == Command.OPEN_DISPUTE
    assert context.proof_count == 1
    assert context.initiator_id == BUYER.user_id


async def test_assessment_timeout_leaves_dispute_open(service, oracle, in_progress):
    oracle.hanging.add(Command.OPEN_DISPUTE)
    dispute = await _open(service, in_progress)
    with pytest.raises(OracleTimeoutError):
        await service.assess_dispute(dispute.id)
    assert (await service.get_dispute(dispute.id, BUYER)).status == DisputeStatus.OPEN

    oracle.hanging.clear()
    oracle.script(Command.OPEN_DISPUTE, Verdict.FLAG)
    dispute = await service.reassess_dispute(dispute.id, ADJUDICATOR)
    assert dispute.assessment.verdict == Verdict.FLAG


async def test_party_cannot_reassess(service, in_progress):
    dispute = await _open(service, in_progress)
    with pytest.raises(UnauthorizedError):
        await service.reassess_dispute(dispute.id, SELLER)


async def test_assessing_closed_dispute_invalid_state(service, oracle, in_progress):
    oracle.script(Command.OPEN_DISPUTE, Verdict.BLOCK)
    dispute = await _open(service, in_progress)
    await service.assess_dispute(dispute.id)
    with pytest.raises(InvalidStateError):
        await service.assess_dispute(dispute.id)


# ─── Resolution ──────────────────────────────────────────────────

async def test_adjudicator_releases_to_seller(service, store, in_progress):
    dispute = await _open(service, in_progress)
    escrow = await service.resolve_dispute(dispute.id, "release", ADJUDICATOR)
    assert escrow.status == EscrowStatus.COMPLETED

    dispute = await service.get_dispute(dispute.id, ADJUDICATOR)
    assert dispute.status == DisputeStatus.RESOLVED
    assert dispute.resolved_by == ADJUDICATOR.user_id
    resolved = [e for e in store.events if e.event_type == EventType.DISPUTE_RESOLVED]
    assert resolved[0].payload["settlement"] == "release"
    assert resolved[0].actor_id == ADJUDICATOR.user_id


async def test_party_cannot_resolve(service, in_progress):
    dispute = await _open(service, in_progress)
    with pytest.raises(UnauthorizedError):
        await service.resolve_dispute(dispute.id, "refund", BUYER)


async def test_unknown_outcome_rejected(service, in_progress):
    dispute = await _open(service, in_progress)
    with pytest.raises(InvalidInputError):
        await service.resolve_dispute(dispute.id, "split", ADJUDICATOR)


async def test_automated_resolution_needs_approve(service, oracle, in_progress):
    oracle.script(Command.OPEN_DISPUTE, Verdict.FLAG)
    dispute = await _open(service, in_progress)
    await service.assess_dispute(dispute.id)
    with pytest.raises(PolicyBlockedError):
        await service.resolve_dispute(dispute.id, "refund")


async def test_dispute_visibility(service, in_progress):
    dispute = await _open(service, in_progress)
    assert (await service.get_dispute(dispute.id, SELLER)).id == dispute.id
    assert (await service.get_dispute(dispute.id, AUDITOR)).id == dispute.id
    with pytest.raises(NotFoundError):
        await service.get_dispute(dispute.id, OUTSIDER)


async def test_new_dispute_after_rejection(service, oracle, in_progress):
    oracle.script(Command.OPEN_DISPUTE, Verdict.BLOCK)
    first = await _open(service, in_progress)
    await service.assess_dispute(first.id)

    second = await _open(service, in_progress, SELLER)
    assert second.id != first.id
    assert second.status == DisputeStatus.OPEN


# ─── Reversal ────────────────────────────────────────────────────

async def test_blocked_reversal_keeps_completed(service, store, oracle, completed):
    oracle.script(Command.REVERSE, Verdict.BLOCK, details="seller delivered")
    with pytest.raises(PolicyBlockedError) as exc:
        await service.reverse(completed.id, BUYER, "changed my mind")
    assert exc.value.http_status == 403

    escrow = await service.get_transaction(completed.id, BUYER)
    assert escrow.status == EscrowStatus.COMPLETED
    assert store.event_types(completed.id)[-2:] == [
        EventType.REVERSAL_REQUESTED.value, EventType.REVERSAL_BLOCKED.value,
    ]


async def test_flagged_reversal_blocked(service, oracle, completed):
    oracle.script(Command.REVERSE, Verdict.FLAG)
    with pytest.raises(PolicyBlockedError):
        await service.reverse(completed.id, BUYER, "item was counterfeit")


async def test_approved_reversal(service, store, completed):
    escrow = await service.reverse(completed.id, SELLER, "refund agreed by both")
    assert escrow.status == EscrowStatus.REVERSED

    reversed_events = [e for e in store.events if e.event_type == EventType.ESCROW_REVERSED]
    assert reversed_events[0].payload == {
        "settlement": "reverse", "reason": "refund agreed by both",
    }


async def test_reversal_timeout_is_audited(service, store, oracle, completed):
    oracle.hanging.add(Command.REVERSE)
    with pytest.raises(OracleTimeoutError):
        await service.reverse(completed.id, BUYER, "changed my mind")
    escrow = await service.get_transaction(completed.id, BUYER)
    assert escrow.status == EscrowStatus.COMPLETED
    assert store.event_types(completed.id)[-1] == EventType.REVERSAL_REQUESTED.value


async def test_reversal_of_disputed_escrow_closes_dispute(service, in_progress):
    dispute = await _open(service, in_progress)
    escrow = await service.reverse(in_progress.id, BUYER, "fraudulent listing")
    assert escrow.status == EscrowStatus.REVERSED
    dispute = await service.get_dispute(dispute.id, BUYER)
    assert dispute.status == DisputeStatus.RESOLVED
    assert dispute.outcome == DisputeOutcome.REVERSED


async def test_reversal_reason_required(service, completed):
    with pytest.raises(InvalidInputError):
        await service.reverse(completed.id, BUYER, "   ")


async def test_reversal_of_in_progress_invalid_state(service, in_progress):
    with pytest.raises(InvalidStateError):
        await service.reverse(in_progress.id, BUYER, "changed my mind")


async def test_reversal_of_cancelled_invalid_state(service, store, initiated):
    await service.cancel(initiated.id, BUYER)
    with pytest.raises(InvalidStateError) as exc:
        await service.reverse(initiated.id, BUYER, "changed my mind")
    assert exc.value.status == EscrowStatus.CANCELLED.value
    assert EventType.REVERSAL_REQUESTED.value not in store.event_types(initiated.id)


async def test_reversal_of_refunded_invalid_state(service, store, in_progress):
    dispute = await _open(service, in_progress)
    await service.resolve_dispute(dispute.id, "refund", ADJUDICATOR)
    with pytest.raises(InvalidStateError) as exc:
        await service.reverse(in_progress.id, SELLER, "buyer kept the goods")
    assert exc.value.status == EscrowStatus.REFUNDED.value
    assert store.escrows[in_progress.id].status == EscrowStatus.REFUNDED


async def test_second_reversal_invalid_state(service, store, completed):
    await service.reverse(completed.id, SELLER, "refund agreed by both")
    with pytest.raises(InvalidStateError) as exc:
        await service.reverse(completed.id, BUYER, "reverse it again")
    assert exc.value.status == EscrowStatus.REVERSED.value
    requested = store.event_types(completed.id).count(EventType.REVERSAL_REQUESTED.value)
    assert requested == 1


async def test_party_resolution_unauthorized_for_any_dispute_id(service, in_progress):
    dispute = await _open(service, in_progress)
    with pytest.raises(UnauthorizedError):
        await service.resolve_dispute(dispute.id, "refund", BUYER)
    with pytest.raises(UnauthorizedError):
        await service.resolve_dispute(uuid4(), "refund", BUYER)
    with pytest.raises(NotFoundError):
        await service.resolve_dispute(uuid4(), "refund", ADJUDICATOR)


# ─── Ratings & reputation ────────────────────────────────────────

async def test_both_parties_rate_after_completion(service, completed):
    await service.rate(completed.id, BUYER, SELLER.user_id, 5, "fast")
    await service.rate(completed.id, SELLER, BUYER.user_id, 4)

    seller_rep = await service.get_reputation(SELLER.user_id)
    assert seller_rep.rating_count == 1
    assert seller_rep.positive_count == 1
    assert seller_rep.score > 0.5


async def test_rating_before_resolution_invalid_state(service, in_progress):
    with pytest.raises(InvalidStateError):
        await service.rate(in_progress.id, BUYER, SELLER.user_id, 5)


async def test_outsider_cannot_rate(service, completed):
    with pytest.raises(NotFoundError):
        await service.rate(completed.id, OUTSIDER, SELLER.user_id, 1)


async def test_unrated_user_is_neutral(service):
    rep = await service.get_reputation(42)
    assert rep.score == 0.5
    assert rep.rating_count == 0
