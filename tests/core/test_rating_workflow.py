"""Rating Workflow — tests for rating input and post-resolution rating rules."""

from datetime import datetime, timezone
from uuid import uuid4

from escrow_engine.core.domain_types import EscrowStatus
from escrow_engine.core.errors import (
    DuplicateRatingError, InvalidInputError, InvalidStateError, SelfRatingError,
)
from escrow_engine.core.rating_workflow import (
    check_not_already_rated, validate_rating, validate_rating_input,
)
from escrow_engine.core.records import Rating
from tests.fakes import make_escrow


def test_score_bounds():
    assert validate_rating_input(1, None) is None
    assert validate_rating_input(5, "great") is None
    assert validate_rating_input(0, None).field == "score"
    assert validate_rating_input(6, None).field == "score"


def test_score_must_be_a_real_integer():
    assert validate_rating_input(True, None) is not None
    assert validate_rating_input(4.5, None) is not None


def test_comment_length_limited():
    assert validate_rating_input(3, "x" * 1001).field == "comment"


def test_self_rating_rejected_first():
    error = validate_rating(make_escrow(EscrowStatus.INITIATED), 1, 1)
    assert isinstance(error, SelfRatingError)


def test_rated_user_must_be_counterparty():
    error = validate_rating(make_escrow(EscrowStatus.COMPLETED), 1, 9)
    assert isinstance(error, InvalidInputError)
    assert error.field == "rated_user_id"


def test_rating_blocked_before_resolution():
    for status in (EscrowStatus.IN_PROGRESS, EscrowStatus.DISPUTED, EscrowStatus.CANCELLED):
        assert isinstance(validate_rating(make_escrow(status), 1, 2), InvalidStateError)


def test_rating_allowed_in_resolved_statuses():
    for status in (EscrowStatus.COMPLETED, EscrowStatus.REFUNDED, EscrowStatus.REVERSED):
        assert validate_rating(make_escrow(status), 2, 1) is None


def test_duplicate_rating_detected():
    existing = Rating(
        id=uuid4(), escrow_transaction_id=uuid4(), rater_id=1, rated_user_id=2,
        score=5, created_at=datetime.now(timezone.utc),
    )
    assert isinstance(check_not_already_rated(existing), DuplicateRatingError)
    assert check_not_already_rated(None) is None
