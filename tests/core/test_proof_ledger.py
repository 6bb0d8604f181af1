"""Proof Ledger — tests for proof input checks, submitter rule and ledger order."""

from datetime import datetime, timezone
from uuid import uuid4

from escrow_engine.core.domain_types import Role
from escrow_engine.core.proof_ledger import (
    PROOF_READER_ROLES, is_valid_submitter, order_ledger, validate_proof_input,
)
from escrow_engine.core.records import Proof
from tests.fakes import make_escrow


def _proof(minute: int, description: str = "p") -> Proof:
    return Proof(
        id=uuid4(), escrow_transaction_id=uuid4(), submitted_by=1,
        proof_type="photo", description=description, file_reference="ref",
        created_at=datetime(2026, 1, 1, 0, minute, tzinfo=timezone.utc),
    )


def test_valid_proof_input():
    assert validate_proof_input("photo", "front door", "s3://a.jpg") is None


def test_unknown_proof_type_rejected():
    error = validate_proof_input("selfie", "front door", "s3://a.jpg")
    assert error.field == "proof_type"


def test_file_reference_required():
    assert validate_proof_input("photo", "front door", "  ").field == "file_reference"


def test_file_cid_length_limited():
    assert validate_proof_input("photo", "d", "r", file_cid="x" * 201).field == "file_cid"


def test_only_parties_submit():
    escrow = make_escrow()
    assert is_valid_submitter(escrow, 1)
    assert is_valid_submitter(escrow, 2)
    assert not is_valid_submitter(escrow, 3)


def test_ledger_ordered_by_submission_time():
    late, early = _proof(5), _proof(1)
    assert order_ledger([late, early]) == [early, late]


def test_ledger_ties_keep_store_order():
    first, second = _proof(1, "first"), _proof(1, "second")
    assert [p.description for p in order_ledger([first, second])] == ["first", "second"]


def test_auditor_reads_proofs():
    assert Role.AUDITOR in PROOF_READER_ROLES
    assert Role.ADJUDICATOR not in PROOF_READER_ROLES
