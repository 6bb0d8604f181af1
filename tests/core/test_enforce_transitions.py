"""Transition Enforcement — tests for the transition table and party checks.

Tests cover:
    - every declared edge is reachable, terminal statuses only leave via reverse
    - check_visible returns the SAME NotFound for missing and non-party
    - check_actor distinguishes buyer / seller / either
    - check_state rejects commands outside their source statuses
    - check_integrity flags corrupted records
    - validate_party_command check order
"""

import pytest

from escrow_engine.core.domain_types import (
    Command, DisputeOutcome, EscrowStatus, Role, TERMINAL_STATUSES, UserId,
)
from escrow_engine.core.enforce_transitions import (
    ALLOWED_EDGES, TRANSACTION_READER_ROLES, TRANSITIONS, check_actor,
    check_integrity, check_state, check_visible, is_allowed_edge,
    resolution_status, target_status, validate_party_command,
)
from escrow_engine.core.errors import (
    InternalError, InvalidStateError, NotFoundError, UnauthorizedError,
)
from escrow_engine.core.records import Principal
from tests.fakes import AUDITOR, BUYER, OUTSIDER, SELLER, make_escrow

S = EscrowStatus


# ─── Transition table ────────────────────────────────────────────

def test_create_is_not_a_table_command():
    assert Command.CREATE not in TRANSITIONS


def test_happy_path_edges_allowed():
    path = [S.INITIATED, S.FUNDED, S.IN_PROGRESS, S.EVIDENCE_SUBMITTED, S.COMPLETED]
    for old, new in zip(path, path[1:]):
        assert is_allowed_edge(old, new), f"{old} -> {new}"


def test_no_direct_jump_from_initiated_to_completed():
    assert not is_allowed_edge(S.INITIATED, S.COMPLETED)
    assert not is_allowed_edge(S.FUNDED, S.COMPLETED)


def test_only_completed_and_disputed_reach_reversed():
    sources = {old for old, new in ALLOWED_EDGES if new == S.REVERSED}
    assert sources == {S.COMPLETED, S.DISPUTED}


def test_terminal_statuses_only_leave_by_reversal():
    for old, new in ALLOWED_EDGES:
        if old in TERMINAL_STATUSES:
            assert (old, new) == (S.COMPLETED, S.REVERSED)


def test_disputed_can_roll_back_to_pre_dispute_status():
    for source in (S.FUNDED, S.IN_PROGRESS, S.EVIDENCE_SUBMITTED):
        assert is_allowed_edge(S.DISPUTED, source)


def test_target_status_for_fixed_commands():
    assert target_status(Command.FUND) == S.FUNDED
    assert target_status(Command.CANCEL) == S.CANCELLED


def test_target_status_raises_for_outcome_driven_command():
    with pytest.raises(ValueError):
        target_status(Command.RESOLVE_DISPUTE)


def test_resolution_status():
    assert resolution_status(DisputeOutcome.RELEASE) == S.COMPLETED
    assert resolution_status(DisputeOutcome.REFUND) == S.REFUNDED
    assert resolution_status(DisputeOutcome.REVERSED) is None


# ─── check_visible ───────────────────────────────────────────────

def test_missing_and_non_party_errors_identical():
    escrow = make_escrow()
    missing = check_visible(None, escrow.id, BUYER)
    hidden = check_visible(escrow, escrow.id, OUTSIDER)
    assert isinstance(missing, NotFoundError)
    assert isinstance(hidden, NotFoundError)
    assert missing.message == hidden.message
    assert missing.to_response()["error"]["code"] == hidden.to_response()["error"]["code"]


def test_parties_are_visible():
    escrow = make_escrow()
    assert check_visible(escrow, escrow.id, BUYER) is None
    assert check_visible(escrow, escrow.id, SELLER) is None


def test_reader_role_grants_visibility_only_when_passed():
    escrow = make_escrow()
    assert isinstance(check_visible(escrow, escrow.id, AUDITOR), NotFoundError)
    assert check_visible(escrow, escrow.id, AUDITOR, TRANSACTION_READER_ROLES) is None


# ─── check_actor ─────────────────────────────────────────────────

def test_seller_cannot_fund():
    error = check_actor(make_escrow(), SELLER, Command.FUND)
    assert isinstance(error, UnauthorizedError)
    assert error.http_status == 403


def test_buyer_cannot_start():
    assert isinstance(check_actor(make_escrow(), BUYER, Command.START), UnauthorizedError)


def test_either_party_may_cancel():
    escrow = make_escrow()
    assert check_actor(escrow, BUYER, Command.CANCEL) is None
    assert check_actor(escrow, SELLER, Command.CANCEL) is None


# ─── check_state ─────────────────────────────────────────────────

def test_cancel_on_funded_is_invalid_state():
    error = check_state(make_escrow(S.FUNDED), Command.CANCEL)
    assert isinstance(error, InvalidStateError)
    assert error.http_status == 409
    assert "funded" in error.message


def test_dispute_on_completed_is_invalid_state():
    assert isinstance(
        check_state(make_escrow(S.COMPLETED), Command.OPEN_DISPUTE), InvalidStateError,
    )


def test_submit_proof_allowed_when_evidence_already_submitted():
    assert check_state(make_escrow(S.EVIDENCE_SUBMITTED), Command.SUBMIT_PROOF) is None


# ─── check_integrity ─────────────────────────────────────────────

def test_identical_parties_is_internal_error():
    error = check_integrity(make_escrow(buyer_id=7, seller_id=7))
    assert isinstance(error, InternalError)
    assert error.http_status == 500


def test_unknown_status_is_internal_error():
    assert isinstance(check_integrity(make_escrow(status="limbo")), InternalError)


# ─── validate_party_command ──────────────────────────────────────

def test_visibility_checked_before_state():
    escrow = make_escrow(S.COMPLETED)
    error = validate_party_command(escrow, escrow.id, OUTSIDER, Command.FUND)
    assert isinstance(error, NotFoundError)


def test_role_checked_before_state():
    escrow = make_escrow(S.COMPLETED)
    error = validate_party_command(escrow, escrow.id, SELLER, Command.FUND)
    assert isinstance(error, UnauthorizedError)


def test_valid_command_passes():
    escrow = make_escrow(S.INITIATED)
    assert validate_party_command(escrow, escrow.id, BUYER, Command.FUND) is None


def test_roles_do_not_make_a_non_party_an_actor():
    escrow = make_escrow(S.INITIATED)
    adjudicating_outsider = Principal(UserId(9), frozenset({Role.ADJUDICATOR}))
    error = validate_party_command(escrow, escrow.id, adjudicating_outsider, Command.CANCEL)
    assert isinstance(error, NotFoundError)
