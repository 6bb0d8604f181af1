"""Rating Workflow Rules — bilateral post-resolution ratings.

Invariants:
    - rater != rated (SelfRatingError)
    - rated user is the OTHER party of the escrow
    - one rating per (rater, escrow) (DuplicateRatingError)
    - only in COMPLETED, REFUNDED or REVERSED: no retaliatory ratings mid-dispute
    - score is an integer 1–5

Design Decisions:
    - Self-rating checked before counterparty: a party rating itself gets the
      precise error instead of a generic "not the counterparty"
"""

from escrow_engine.core.domain_types import Command
from escrow_engine.core.enforce_transitions import check_state
from escrow_engine.core.errors import (
    DuplicateRatingError, EscrowError, InvalidInputError, SelfRatingError,
)
from escrow_engine.core.records import EscrowTransaction, Rating


MIN_SCORE: int = 1
MAX_SCORE: int = 5
MAX_COMMENT_LENGTH: int = 1000


def validate_rating_input(score: int, comment: str | None) -> EscrowError | None:
    if isinstance(score, bool) or not isinstance(score, int):
        return InvalidInputError("score must be an integer", "score")
    if not MIN_SCORE <= score <= MAX_SCORE:
        return InvalidInputError(
            f"score must be between {MIN_SCORE} and {MAX_SCORE}", "score",
        )
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        return InvalidInputError(
            f"comment must be at most {MAX_COMMENT_LENGTH} characters", "comment",
        )
    return None


def check_not_self(rater_id: int, rated_user_id: int) -> EscrowError | None:
    if rater_id == rated_user_id:
        return SelfRatingError()
    return None


def check_counterparty(
    escrow: EscrowTransaction, rater_id: int, rated_user_id: int,
) -> EscrowError | None:
    if rated_user_id != escrow.counterparty_of(rater_id):
        return InvalidInputError(
            "rated_user_id must be the other party of the escrow", "rated_user_id",
        )
    return None


def check_not_already_rated(existing: Rating | None) -> EscrowError | None:
    if existing is not None:
        return DuplicateRatingError()
    return None


def validate_rating(
    escrow: EscrowTransaction, rater_id: int, rated_user_id: int,
) -> EscrowError | None:
    """Chain self, counterparty and status checks (caller already verified party)."""
    return (
        check_not_self(rater_id, rated_user_id)
        or check_counterparty(escrow, rater_id, rated_user_id)
        or check_state(escrow, Command.RATE)
    )
